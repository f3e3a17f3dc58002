"""Contact resolution: find-or-create by channel identity."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from replyflow.db.models import Contact
from replyflow.services.idempotency import try_insert
from replyflow.utils.normalization import normalize_email, normalize_name, normalize_phone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelIdentity:
    """Who sent an inbound message, as far as the channel tells us."""

    phone: str | None = None
    phone_normalized: str | None = None
    email: str | None = None
    name: str | None = None
    wa_id: str | None = None

    @property
    def sender_key(self) -> str | None:
        """Stable sender identifier used in fallback dedup keys."""
        return self.wa_id or self.phone_normalized or self.email

    def is_empty(self) -> bool:
        return self.sender_key is None


def build_identity(
    *,
    phone: str | None = None,
    email: str | None = None,
    name: str | None = None,
    wa_id: str | None = None,
) -> ChannelIdentity:
    """
    Normalize raw channel identity fields.

    Raises:
        ValueError: If a phone was given but cannot be parsed
    """
    wa_id = wa_id.strip() if wa_id and wa_id.strip() else None
    raw_phone = phone or wa_id
    return ChannelIdentity(
        phone=raw_phone.strip() if raw_phone else None,
        phone_normalized=normalize_phone(raw_phone),
        email=normalize_email(email),
        name=normalize_name(name),
        wa_id=wa_id,
    )


def find_contact(db: Session, identity: ChannelIdentity) -> Contact | None:
    """Match by wa_id, then normalized phone, then email."""
    if identity.wa_id:
        contact = db.query(Contact).filter(Contact.wa_id == identity.wa_id).first()
        if contact:
            return contact
    if identity.phone_normalized:
        contact = (
            db.query(Contact)
            .filter(Contact.phone_normalized == identity.phone_normalized)
            .first()
        )
        if contact:
            return contact
    if identity.email:
        return db.query(Contact).filter(Contact.email == identity.email).first()
    return None


def _identity_taken(db: Session, contact: Contact, column, value: str) -> bool:
    return (
        db.query(Contact.id).filter(column == value, Contact.id != contact.id).first()
        is not None
    )


def fill_contact_details(
    db: Session,
    contact: Contact,
    *,
    name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    phone_normalized: str | None = None,
    wa_id: str | None = None,
    nationality: str | None = None,
) -> list[str]:
    """
    Fill identity fields that are still empty. Existing values are never replaced.

    Unique identity values already owned by another contact are skipped.
    Returns the names of the fields that changed.
    """
    changed: list[str] = []

    if name and not contact.full_name:
        contact.full_name = name
        changed.append("full_name")
    if nationality and not contact.nationality:
        contact.nationality = nationality
        changed.append("nationality")
    if email and not contact.email and not _identity_taken(db, contact, Contact.email, email):
        contact.email = email
        changed.append("email")
    if (
        phone_normalized
        and not contact.phone_normalized
        and not _identity_taken(db, contact, Contact.phone_normalized, phone_normalized)
    ):
        contact.phone = phone
        contact.phone_normalized = phone_normalized
        changed.append("phone_normalized")
    if wa_id and not contact.wa_id and not _identity_taken(db, contact, Contact.wa_id, wa_id):
        contact.wa_id = wa_id
        changed.append("wa_id")

    if changed:
        db.flush()
    return changed


def resolve_contact(db: Session, identity: ChannelIdentity, *, source: str | None = None) -> Contact:
    """
    Return the contact for ``identity``, creating it if no match exists.

    Creation goes through the unique identity indexes; losing a race to a
    concurrent insert falls back to the row the other writer created.
    """
    contact = find_contact(db, identity)
    if contact is None:
        result = try_insert(
            db,
            Contact(
                full_name=identity.name,
                phone=identity.phone,
                phone_normalized=identity.phone_normalized,
                email=identity.email,
                wa_id=identity.wa_id,
                source=source,
            ),
        )
        if result.inserted:
            logger.info("Created contact %s source=%s", result.row.id, source)
            return result.row
        contact = find_contact(db, identity)
        if contact is None:
            raise RuntimeError("Contact insert conflicted but no matching contact was found")

    fill_contact_details(
        db,
        contact,
        name=identity.name,
        email=identity.email,
        phone=identity.phone,
        phone_normalized=identity.phone_normalized,
        wa_id=identity.wa_id,
    )
    return contact
