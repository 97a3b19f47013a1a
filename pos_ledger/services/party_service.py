"""
Service layer for Party operations.

Registers the customers and suppliers that sales may reference.

Returns PartyInfo DTOs instead of ORM entities.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from pos_ledger.exceptions import PartyNotFoundError
from pos_ledger.logging_config import get_logger
from pos_ledger.models.party import Party, PartyType
from pos_ledger.services.base import BaseService

logger = get_logger("services.party")


@dataclass(frozen=True)
class PartyInfo:
    """Immutable DTO for party data."""

    id: UUID
    party_type: PartyType
    name: str
    phone: str | None
    email: str | None
    address: str | None


class PartyService(BaseService[Party]):
    """Service for managing customers and suppliers."""

    def _to_dto(self, party: Party) -> PartyInfo:
        return PartyInfo(
            id=party.id,
            party_type=PartyType(party.party_type),
            name=party.name,
            phone=party.phone,
            email=party.email,
            address=party.address,
        )

    def get_by_id(self, party_id: UUID) -> PartyInfo:
        """
        Get party by ID.

        Raises:
            PartyNotFoundError: If party doesn't exist.
        """
        party = self.session.get(Party, party_id)
        if party is None:
            raise PartyNotFoundError(str(party_id))
        return self._to_dto(party)

    def create_party(
        self,
        name: str,
        actor_id: UUID,
        party_type: PartyType = PartyType.CUSTOMER,
        phone: str | None = None,
        email: str | None = None,
        address: str | None = None,
    ) -> PartyInfo:
        """
        Create a new party.

        Args:
            name: Display name (required, non-blank).
            actor_id: UUID of user/actor creating the party.
            party_type: CUSTOMER (default) or SUPPLIER.
            phone: Optional contact number.
            email: Optional contact address.
            address: Optional postal address.

        Raises:
            ValueError: If name is blank or party_type is unknown.
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("Party name must not be empty")
        party_type = PartyType(party_type)

        party = Party(
            party_type=party_type,
            name=name,
            phone=phone,
            email=email,
            address=address,
            created_by_id=actor_id,
        )
        self.session.add(party)
        self.session.flush()

        logger.info(
            "party_created",
            extra={"party_id": str(party.id), "party_type": party_type.value},
        )
        return self._to_dto(party)
