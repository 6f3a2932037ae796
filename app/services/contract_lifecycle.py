"""Delivery contract lifecycle.

The legal transition graph lives in ``TRANSITIONS`` and nowhere else::

    PENDING ──accept──▶ ACCEPTED_AWAITING_PICKUP ──pickup──▶ IN_TRANSIT ──deliver──▶ DELIVERED
       │                         │                                  └──────fail───▶ FAILED
       └────────cancel───────────┴──────────────▶ CANCELLED

``ContractLifecycle.apply`` runs one action strictly in order: role and
source-state checks, input validation, vicinity guard, proof upload, a single
conditional row update, then the post-commit side effects (change event,
audit entry, push to the counterpart, registered hooks). Any failure before
the commit leaves the stored row exactly as it was.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import (
    ActorNotPermitted,
    ContractNotFound,
    IllegalTransition,
    TransitionConflict,
    TransitionPersistenceError,
    TransitionValidationError,
    VicinityError,
)
from app.models.contract import Contract
from app.models.profile import Profile
from app.services import storage_service
from app.services.audit_service import log_audit
from app.services.notification_service import dispatch_user_notification
from app.services.realtime import ChangeEvent, ChangeFeed, change_feed, row_to_dict
from app.services.vicinity_service import GateDecision, VicinityGate

logger = logging.getLogger(__name__)


class ContractStatus(IntEnum):
    PENDING = 1
    CANCELLED = 2
    ACCEPTED_AWAITING_PICKUP = 3
    IN_TRANSIT = 4
    DELIVERED = 5
    FAILED = 6


STATUS_NAMES = {
    ContractStatus.PENDING: "Available for Pickup",
    ContractStatus.CANCELLED: "Cancelled",
    ContractStatus.ACCEPTED_AWAITING_PICKUP: "Accepted - Awaiting Pickup",
    ContractStatus.IN_TRANSIT: "In Transit",
    ContractStatus.DELIVERED: "Delivered",
    ContractStatus.FAILED: "Delivery Failed",
}

TERMINAL_STATUSES = frozenset({ContractStatus.CANCELLED, ContractStatus.DELIVERED, ContractStatus.FAILED})


@dataclass(frozen=True)
class Transition:
    action: str
    sources: frozenset
    target: ContractStatus
    actor_roles: tuple
    timestamp_field: str
    required_images: tuple = ()
    requires_remarks: bool = False
    # contract column holding the geometry the device must be near
    vicinity_target: Optional[str] = None
    title: str = ""


TRANSITIONS: dict[str, Transition] = {
    "accept": Transition(
        action="accept",
        sources=frozenset({ContractStatus.PENDING}),
        target=ContractStatus.ACCEPTED_AWAITING_PICKUP,
        actor_roles=("delivery",),
        timestamp_field="accepted_at",
        title="Contract Accepted",
    ),
    "pickup": Transition(
        action="pickup",
        sources=frozenset({ContractStatus.ACCEPTED_AWAITING_PICKUP}),
        target=ContractStatus.IN_TRANSIT,
        actor_roles=("delivery",),
        timestamp_field="pickup_at",
        required_images=("pickup_proof",),
        vicinity_target="pickup_location_geo",
        title="Luggage Picked Up",
    ),
    "deliver": Transition(
        action="deliver",
        sources=frozenset({ContractStatus.IN_TRANSIT}),
        target=ContractStatus.DELIVERED,
        actor_roles=("delivery",),
        timestamp_field="delivered_at",
        required_images=("passenger_id_proof", "passenger_form_proof", "delivery_proof"),
        vicinity_target="drop_off_location_geo",
        title="Luggage Delivered",
    ),
    "fail": Transition(
        action="fail",
        sources=frozenset({ContractStatus.IN_TRANSIT}),
        target=ContractStatus.FAILED,
        actor_roles=("delivery",),
        timestamp_field="cancelled_at",
        required_images=("failure_proof",),
        requires_remarks=True,
        vicinity_target="drop_off_location_geo",
        title="Delivery Failed",
    ),
    "cancel": Transition(
        action="cancel",
        sources=frozenset({ContractStatus.PENDING, ContractStatus.ACCEPTED_AWAITING_PICKUP}),
        target=ContractStatus.CANCELLED,
        actor_roles=("airline", "delivery"),
        timestamp_field="cancelled_at",
        requires_remarks=True,
        title="Contract Cancelled",
    ),
}


def status_name(status_id: int) -> str:
    try:
        return STATUS_NAMES[ContractStatus(status_id)]
    except ValueError:
        return "Unknown"


def can_transition(status_id: int, action: str) -> bool:
    t = TRANSITIONS.get(action)
    return t is not None and status_id in t.sources


def allowed_actions(status_id: int) -> list[str]:
    return [name for name, t in TRANSITIONS.items() if status_id in t.sources]


def is_terminal(status_id: int) -> bool:
    return status_id in TERMINAL_STATUSES


Hook = Callable[[Session, Contract, Transition, Profile], None]


class ContractLifecycle:
    def __init__(self, storage: storage_service.StorageClient, gate: VicinityGate,
                 feed: ChangeFeed = change_feed,
                 notify: Callable[..., None] = dispatch_user_notification):
        self.storage = storage
        self.gate = gate
        self.feed = feed
        self.notify = notify
        self._hooks: dict[str, list[Hook]] = defaultdict(list)

    def on(self, action: str, hook: Hook) -> None:
        """Register a post-commit side effect for one action (or ``"*"`` for all)."""
        if action != "*" and action not in TRANSITIONS:
            raise ValueError(f"unknown action: {action}")
        self._hooks[action].append(hook)

    # -------------------------
    # guards
    # -------------------------
    def _check_actor(self, contract: Contract, t: Transition, actor: Profile) -> None:
        if actor.role not in t.actor_roles:
            raise ActorNotPermitted(f"{actor.role} cannot {t.action} contracts")
        if t.action == "accept":
            return
        if actor.role == "airline":
            if contract.airline_id != actor.id:
                raise ActorNotPermitted("contract belongs to another airline account")
        elif contract.delivery_id != actor.id:
            raise ActorNotPermitted("contract is not assigned to you")

    @staticmethod
    def _validate(t: Transition, remarks: Optional[str], images: dict[str, bytes]) -> None:
        missing = []
        if t.requires_remarks and not (remarks or "").strip():
            missing.append("remarks")
        missing.extend(kind for kind in t.required_images if not images.get(kind))
        if missing:
            raise TransitionValidationError(f"{t.action}: missing {', '.join(missing)}", missing)

    def check_vicinity(self, contract: Contract, action: str, device_location) -> Optional[GateDecision]:
        t = TRANSITIONS.get(action)
        if t is None or not t.vicinity_target:
            return None
        return self.gate.check(action, device_location, getattr(contract, t.vicinity_target))

    # -------------------------
    # apply
    # -------------------------
    def apply(self, db: Session, contract_id: str, action: str, actor: Profile, *,
              remarks: Optional[str] = None, images: Optional[dict[str, bytes]] = None,
              device_location=None, now: Optional[datetime] = None) -> Contract:
        t = TRANSITIONS.get(action)
        if t is None:
            raise ValueError(f"unknown action: {action}")
        images = images or {}

        contract = db.get(Contract, contract_id)
        if not contract:
            raise ContractNotFound(contract_id)
        self._check_actor(contract, t, actor)
        current = contract.contract_status_id
        if current not in t.sources:
            raise IllegalTransition(action, current)
        self._validate(t, remarks, images)

        decision = self.check_vicinity(contract, action, device_location)
        if decision is not None and not decision.permitted:
            raise VicinityError(action, decision.distance_km, decision.threshold_m)

        values = {}
        try:
            for kind in t.required_images:
                values[kind] = storage_service.upload_image(
                    self.storage, bucket=storage_service.PROOF_BUCKET, owner_id=contract.id,
                    kind=kind, content=images[kind],
                )
        except Exception:
            self._discard(list(values.values()))
            raise
        uploaded = list(values.values())

        now = now or datetime.now(timezone.utc)
        values.update({
            "contract_status_id": int(t.target),
            t.timestamp_field: now,
            "updated_at": now,
        })
        if t.action == "accept":
            values["delivery_id"] = actor.id
        if remarks and remarks.strip():
            values["remarks"] = remarks.strip()

        stmt = (
            update(Contract)
            .where(Contract.id == contract.id, Contract.contract_status_id == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = db.execute(stmt)
            if result.rowcount != 1:
                db.rollback()
                self._discard(uploaded)
                raise TransitionConflict(f"contract {contract.id} changed status before {action} completed")
            log_audit(db, actor.id, f"contract.{action}", "contract", contract.id,
                      {"from": current, "to": int(t.target)}, commit=False)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            self._discard(uploaded)
            logger.exception("contract %s: %s write failed", contract.id, action)
            raise TransitionPersistenceError(f"could not save {action} for contract {contract.id}") from e

        db.refresh(contract)
        logger.info("contract %s: %s (%s -> %s) by %s", contract.id, action, current, int(t.target), actor.id)
        self._after_commit(db, contract, t, actor, current)
        return contract

    def _discard(self, keys: list[str]) -> None:
        """Remove proof objects of an action that did not go through."""
        for key in keys:
            try:
                self.storage.delete(key)
            except OSError:
                logger.warning("could not remove orphaned proof %s", key)

    def _after_commit(self, db: Session, contract: Contract, t: Transition, actor: Profile, previous: int) -> None:
        self.feed.publish(ChangeEvent(
            table="contracts",
            event_type="UPDATE",
            new=row_to_dict(contract),
            old={"id": contract.id, "contract_status_id": previous},
        ))
        recipient, body = self._message_for(contract, t, actor)
        self.notify(recipient, f"{t.title} - {contract.id}", body, {
            "contractId": contract.id,
            "action": t.action,
            "status": int(t.target),
            "statusName": STATUS_NAMES[t.target],
        })
        for hook in self._hooks.get(t.action, []) + self._hooks.get("*", []):
            try:
                hook(db, contract, t, actor)
            except Exception:
                logger.exception("contract %s: %s hook failed", contract.id, t.action)

    @staticmethod
    def _message_for(contract: Contract, t: Transition, actor: Profile) -> tuple[Optional[str], str]:
        who = actor.full_name or actor.email
        owner = contract.owner_full_name or "the passenger"
        if t.action == "cancel" and actor.role == "airline":
            return contract.delivery_id, f"Contract {contract.id} for {owner} was cancelled by the airline. Remarks: {contract.remarks or ''}"
        if t.action == "fail":
            return contract.airline_id, f"{who} could not deliver the luggage of {owner}. Remarks: {contract.remarks or ''}"
        if t.action == "cancel":
            return contract.airline_id, f"{who} cancelled contract {contract.id}. Remarks: {contract.remarks or ''}"
        verbs = {"accept": "accepted", "pickup": "picked up", "deliver": "delivered"}
        return contract.airline_id, f"{who} {verbs[t.action]} the luggage of {owner} (flight {contract.flight_number})."
