# app/domain/families/registry.py
from typing import Dict

from app.domain.families.base import FamilyRules
from app.domain.families.invoice import CreditNoteRules, DebitNoteRules, InvoiceRules
from app.domain.families.waybill import CarrierWaybillRules, OutboundWaybillRules
from app.domain.models.document import DocumentFamily

FAMILY_RULES: Dict[DocumentFamily, FamilyRules] = {
    rules.family: rules
    for rules in (
        InvoiceRules(),
        CreditNoteRules(),
        DebitNoteRules(),
        OutboundWaybillRules(),
        CarrierWaybillRules(),
    )
}


def rules_for(family: DocumentFamily) -> FamilyRules:
    return FAMILY_RULES[DocumentFamily(family)]
