"""
amtsbote.web
~~~~~~~~~~~~
HTTP API (FastAPI) and its uvicorn launcher.
"""
