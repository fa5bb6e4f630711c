"""
Order wizard: step machine, selection state and proxy transports
"""
from app.wizard.controller import OrderWizard, WizardError
from app.wizard.standalone_loa import StandaloneLoaSession
from app.wizard.state import PortingNumber, UtilityBill, WizardState
from app.wizard.steps import STEPS, Step
from app.wizard.transport import HttpTransport, LocalTransport, ProxyTransport, TransportError

__all__ = [
    "OrderWizard",
    "WizardError",
    "StandaloneLoaSession",
    "PortingNumber",
    "UtilityBill",
    "WizardState",
    "STEPS",
    "Step",
    "HttpTransport",
    "LocalTransport",
    "ProxyTransport",
    "TransportError",
]
