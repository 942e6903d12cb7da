"""
amtsbote.tax
~~~~~~~~~~~~
Regulated tax documents filed through FinanzOnline.

  - ``uva``  Umsatzsteuervoranmeldung (advance VAT return, U30)
  - ``zm``   Zusammenfassende Meldung (EU recapitulative statement)
"""

from .uva import UVA, UVAPeriod
from .zm import ZM, ZMEntry, parse_zm_csv

__all__ = ["UVA", "UVAPeriod", "ZM", "ZMEntry", "parse_zm_csv"]
