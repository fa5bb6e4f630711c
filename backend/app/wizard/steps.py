"""
Order wizard step definitions
"""
from typing import List

from pydantic import BaseModel

PRODUCTS_STEP = 1
CALL_SETUP_STEP = 2
CONFIGURE_STEP = 3
PAYMENT_STEP = 4
PORTING_LOA_STEP = 5


class Step(BaseModel):
    id: int
    key: str
    name: str


STEPS: List[Step] = [
    Step(id=PRODUCTS_STEP, key="products", name="Products"),
    Step(id=CALL_SETUP_STEP, key="call_setup", name="Setup Inbound/Outbound Calls"),
    Step(id=CONFIGURE_STEP, key="configure", name="Configure Numbers"),
    Step(id=PAYMENT_STEP, key="payment", name="Payment"),
    Step(id=PORTING_LOA_STEP, key="porting_loa", name="Porting LOA"),
]

_STEPS_BY_ID = {step.id: step for step in STEPS}


def get_step(step_id: int) -> Step:
    """Raises KeyError for unknown step ids"""
    return _STEPS_BY_ID[step_id]
