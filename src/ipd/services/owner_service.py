from __future__ import annotations

import logging
import math
import uuid
from typing import Callable, Iterable

from ipd.domain.errors import NotFoundError, ValidationError
from ipd.domain.models import Owner
from ipd.repositories.unit_of_work import SERVER_TIMESTAMP, Increment, RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger(__name__)


class OwnerService:
    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))

    def list_owners(self) -> list[Owner]:
        return self.repo.list_owners()

    def seed_default_owners(self, names: Iterable[str]) -> int:
        """Create the default roster with zero contribution, only when there are no owners yet."""
        if self.repo.count_owners() > 0:
            return 0
        names = [n.strip() for n in names if n and n.strip()]
        if not names:
            return 0
        with self.uow_factory() as uow:
            for name in names:
                uow.create("owners", uuid.uuid4().hex, self._new_owner_fields(name, 0.0))
        log.info("owners_seeded count=%s", len(names))
        return len(names)

    def create_owner(self, name: str, contribution: float = 0.0) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Owner name is required.", code="missing_name")
        try:
            amount = float(contribution)
        except (TypeError, ValueError) as e:
            raise ValidationError("Contribution must be a number >= 0.", code="invalid_contribution") from e
        if not math.isfinite(amount) or amount < 0:
            raise ValidationError("Contribution must be a number >= 0.", code="invalid_contribution")

        owner_id = uuid.uuid4().hex
        with self.uow_factory() as uow:
            uow.create("owners", owner_id, self._new_owner_fields(name, amount))
        log.info("owner_created owner_id=%s contribution=%.3f", owner_id, amount)
        return owner_id

    def add_contribution(self, owner_id: str, amount: float) -> None:
        try:
            value = float(amount)
        except (TypeError, ValueError) as e:
            raise ValidationError("Amount must be positive.", code="invalid_amount") from e
        if not math.isfinite(value) or value <= 0:
            raise ValidationError("Amount must be positive.", code="invalid_amount")
        if not self.repo.get_owner(owner_id):
            raise NotFoundError("Owner not found.")

        with self.uow_factory() as uow:
            uow.update("owners", owner_id, {"contribution": Increment(value), "updated_at": SERVER_TIMESTAMP})
        log.info("contribution_added owner_id=%s amount=%.3f", owner_id, value)

    @staticmethod
    def _new_owner_fields(name: str, contribution: float) -> dict:
        return {
            "name": name,
            "contribution": contribution,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        }
