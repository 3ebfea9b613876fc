# services/access.py
from __future__ import annotations

from schemas import Principal, InvoiceRead, normalize_email


def can_access(principal: Principal, invoice: InvoiceRead) -> bool:
    """
    Admins see every invoice; anyone else only invoices addressed to their
    own email. Stored emails are already lowercased, so only the principal
    side needs normalizing.
    """
    if principal.is_admin:
        return True
    email = normalize_email(principal.email or "")
    return bool(email) and email == invoice.customer_email
