"""Concrete outbound calling backends."""

from callcenter.telephony.adapters.ami import AmiScriptBackend
from callcenter.telephony.adapters.click2call import Click2CallBackend
from callcenter.telephony.adapters.mock import MockBackend
from callcenter.telephony.adapters.twilio import TwilioBackend

__all__ = [
    "AmiScriptBackend",
    "Click2CallBackend",
    "MockBackend",
    "TwilioBackend",
]
