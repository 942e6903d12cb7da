"""
amtsbote.elda
~~~~~~~~~~~~~
Employee on-/off-boarding declarations for the social-insurance channel
ELDA: models, XML codec and SOAP client.
"""

from .client import ELDAClient
from .codec import (
    ELDA_NS,
    decode_abmeldung,
    decode_anmeldung,
    encode_abmeldung,
    encode_anmeldung,
)
from .models import (
    Abmeldung,
    Anmeldung,
    Arbeitszeit,
    Beschaeftigung,
    ConnectionTestResult,
    ELDAResponse,
    Entgelt,
    describe_elda_code,
)

__all__ = [
    "Abmeldung",
    "Anmeldung",
    "Arbeitszeit",
    "Beschaeftigung",
    "ConnectionTestResult",
    "ELDAClient",
    "ELDAResponse",
    "ELDA_NS",
    "Entgelt",
    "decode_abmeldung",
    "decode_anmeldung",
    "describe_elda_code",
    "encode_abmeldung",
    "encode_anmeldung",
]
