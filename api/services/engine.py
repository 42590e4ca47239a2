"""
Representation engine: the public contract of the rights engine.

Every write operation runs as one unit of work:

1. acquire the per-aggregate locks (``application:<id>``, ``candidate:<id>``)
2. open a session and a single transaction
3. run the domain functions, collecting domain events in an outbox
4. commit, release the locks, then publish the outbox

Transient storage failures are retried with exponential backoff, and the
whole unit is bounded by a caller-supplied timeout.
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar, Union

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from api.services import applications as application_service
from api.services import placements as placement_service
from api.services import prescreen as prescreen_service
from api.services import relationships as relationship_service
from api.services import visibility
from api.services.applications import HireDetails
from api.services.audit import list_audit_entries
from api.services.bulk import BulkItemResult, run_bulk
from api.services.fee_split import FeeSplit, compute_split
from core.config import settings
from core.errors import Busy, ConflictError, EngineError, Internal, InvalidInput
from core.events import DomainEvent, EventPublisher, CeleryEventPublisher
from core.integrations.documents import (
    DocumentStore,
    DocumentStoreError,
    HttpDocumentStore,
    InMemoryDocumentStore,
)
from core.integrations.subscriptions import (
    HttpTierService,
    StaticTierService,
    TierService,
    TierServiceError,
)
from core.locks import LockManager, application_lock_key, build_lock_manager, candidate_lock_key
from core.security import Actor
from core.utils.datetime import SystemClock
from database.engine import AsyncSessionLocal
from database.models.applications import ApplicationStage
from database.models.relationships import RelationshipStatus
from database.security import ImmutableRecordError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Work = Callable[[AsyncSession, List[DomainEvent]], Awaitable[T]]


def parse_stage(value: Union[str, ApplicationStage]) -> ApplicationStage:
    if isinstance(value, ApplicationStage):
        return value
    stage = ApplicationStage.try_parse(value)
    if stage is None:
        raise InvalidInput(f"Unknown application stage '{value}'", stage=value)
    return stage


def _is_transient(exc: DBAPIError) -> bool:
    return isinstance(exc, OperationalError) or bool(exc.connection_invalidated)


class RepresentationEngine:
    """
    Composes the ledger, state machine, router and fee split over a database.

    Collaborators are injected so tests and alternative deployments can swap
    them; ``from_settings`` wires the production defaults.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        locks: Optional[LockManager] = None,
        documents: Optional[DocumentStore] = None,
        tiers: Optional[TierService] = None,
        events: Optional[EventPublisher] = None,
        clock=None,
        operation_timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        relationship_duration_months: Optional[int] = None,
        bulk_max_concurrency: Optional[int] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.locks = locks or build_lock_manager()
        self.documents = documents or InMemoryDocumentStore()
        self.tiers = tiers or StaticTierService()
        self.events = events or CeleryEventPublisher(settings.notification_webhook_url)
        self.clock = clock or SystemClock()
        self.operation_timeout = (
            settings.operation_timeout_seconds if operation_timeout is None else operation_timeout
        )
        self.max_retries = settings.storage_max_retries if max_retries is None else max_retries
        self.retry_backoff = (
            settings.storage_retry_backoff_seconds if retry_backoff is None else retry_backoff
        )
        self.relationship_duration_months = (
            relationship_duration_months or settings.relationship_duration_months
        )
        self.bulk_max_concurrency = bulk_max_concurrency or settings.bulk_max_concurrency

    @classmethod
    def from_settings(cls) -> "RepresentationEngine":
        if settings.document_service_url:
            documents: DocumentStore = HttpDocumentStore(
                settings.document_service_url, timeout=settings.collaborator_timeout_seconds
            )
        else:
            logger.warning("DOCUMENT_SERVICE_URL not set, using an empty in-memory document store")
            documents = InMemoryDocumentStore()

        if settings.billing_service_url:
            tiers: TierService = HttpTierService(
                settings.billing_service_url, timeout=settings.collaborator_timeout_seconds
            )
        else:
            tiers = StaticTierService()

        return cls(
            session_factory=AsyncSessionLocal,
            locks=build_lock_manager(),
            documents=documents,
            tiers=tiers,
            events=CeleryEventPublisher(settings.notification_webhook_url),
        )

    async def close(self) -> None:
        await self.locks.close()

    def now(self) -> datetime:
        return self.clock.now()

    # ==================== Unit of work ==================== #

    async def _attempt(self, lock_keys: Sequence[str], work: Work[T]) -> Tuple[T, List[DomainEvent]]:
        async with AsyncExitStack() as stack:
            for key in lock_keys:
                await stack.enter_async_context(self.locks.acquire(key))
            async with self.session_factory() as session:
                async with session.begin():
                    outbox: List[DomainEvent] = []
                    result = await work(session, outbox)
            return result, outbox

    async def _with_retries(
        self, name: str, lock_keys: Sequence[str], work: Work[T]
    ) -> Tuple[T, List[DomainEvent]]:
        attempt = 0
        while True:
            try:
                return await self._attempt(lock_keys, work)
            except EngineError:
                raise
            except StaleDataError as e:
                logger.warning(f"{name}: concurrent modification detected")
                raise Busy(f"{name} raced with a concurrent update, retry", operation=name) from e
            except IntegrityError as e:
                logger.warning(f"{name}: integrity constraint rejected the write")
                raise ConflictError(
                    f"{name} conflicts with existing data", operation=name
                ) from e
            except DBAPIError as e:
                if not _is_transient(e) or attempt >= self.max_retries:
                    logger.error(f"{name}: storage failure after {attempt + 1} attempt(s)", exc_info=True)
                    raise Internal(f"Storage failure during {name}", operation=name) from e
                delay = self.retry_backoff * 2 ** attempt
                attempt += 1
                logger.warning(
                    f"{name}: transient storage error ({type(e).__name__}), "
                    f"retry {attempt}/{self.max_retries} in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
            except (DocumentStoreError, TierServiceError) as e:
                logger.error(f"{name}: collaborator failure: {e}")
                raise Internal(f"Collaborator unavailable during {name}", operation=name) from e
            except ImmutableRecordError as e:
                logger.error(f"{name}: {e}")
                raise Internal(str(e), operation=name) from e

    async def _execute(
        self,
        name: str,
        lock_keys: Sequence[str],
        work: Work[T],
        timeout: Optional[float] = None,
    ) -> T:
        limit = self.operation_timeout if timeout is None else timeout
        try:
            result, outbox = await asyncio.wait_for(
                self._with_retries(name, lock_keys, work), timeout=limit
            )
        except asyncio.TimeoutError:
            logger.warning(f"{name} timed out after {limit}s, rolled back")
            raise Busy(f"{name} timed out after {limit}s", operation=name)
        await self._publish(outbox)
        return result

    async def _read(
        self,
        work: Callable[[AsyncSession], Awaitable[T]],
        timeout: Optional[float] = None,
    ) -> T:
        async def run() -> T:
            async with self.session_factory() as session:
                return await work(session)

        limit = self.operation_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(run(), timeout=limit)
        except asyncio.TimeoutError:
            raise Busy(f"Read timed out after {limit}s")
        except DBAPIError as e:
            logger.error("Storage failure during read", exc_info=True)
            raise Internal("Storage failure during read") from e

    async def _publish(self, outbox: List[DomainEvent]) -> None:
        for event in outbox:
            try:
                await self.events.publish(event)
            except Exception as e:
                logger.error(f"Failed to publish {event.event_type} event {event.event_id}: {e}")

    # ==================== Fee split ==================== #

    def compute_split(self, salary, fee_percentage, recruiter_tier) -> FeeSplit:
        return compute_split(salary, fee_percentage, recruiter_tier)

    # ==================== Applications ==================== #

    async def submit_application(
        self,
        actor: Actor,
        candidate_id: int,
        job_id: int,
        primary_resume_id: Optional[str] = None,
        document_ids: Optional[List[str]] = None,
        answers: Optional[Dict[int, str]] = None,
        notes: Optional[str] = None,
        recruiter_id: Optional[int] = None,
        consent_source: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        async def work(session: AsyncSession, outbox: List[DomainEvent]):
            application = await application_service.submit_application(
                session,
                candidate_id=candidate_id,
                job_id=job_id,
                actor=actor,
                at=self.now(),
                outbox=outbox,
                relationship_duration_months=self.relationship_duration_months,
                primary_resume_id=primary_resume_id,
                document_ids=document_ids,
                answers=answers,
                notes=notes,
                recruiter_id=recruiter_id,
                consent_source=consent_source,
            )
            return application_service.application_to_dict(application)

        return await self._execute(
            "submit_application", [candidate_lock_key(candidate_id)], work, timeout
        )

    async def get_application(
        self,
        application_id: int,
        viewer: Optional[Actor] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        async def work(session: AsyncSession):
            application, candidate = await application_service.get_application_with_candidate(
                session, application_id
            )
            return application_service.application_to_dict(application, candidate, viewer)

        return await self._read(work, timeout)

    async def list_applications(
        self,
        viewer: Optional[Actor] = None,
        job_id: Optional[int] = None,
        recruiter_id: Optional[int] = None,
        candidate_id: Optional[int] = None,
        stage: Optional[Union[str, ApplicationStage]] = None,
        page: int = 1,
        page_size: int = 20,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        stage_filter = parse_stage(stage) if stage is not None else None

        async def work(session: AsyncSession):
            rows, total = await application_service.list_applications(
                session,
                job_id=job_id,
                recruiter_id=recruiter_id,
                candidate_id=candidate_id,
                stage=stage_filter,
                limit=page_size,
                offset=(page - 1) * page_size,
            )
            return {
                "items": [
                    application_service.application_to_dict(application, candidate, viewer)
                    for application, candidate in rows
                ],
                "total": total,
                "page": page,
                "page_size": page_size,
                "total_pages": (total + page_size - 1) // page_size,
            }

        return await self._read(work, timeout)

    async def get_application_history(
        self, application_id: int, timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        async def work(session: AsyncSession):
            await application_service.load_application(session, application_id)
            return {
                "application_id": application_id,
                "stage_history": await application_service.get_stage_history(session, application_id),
                "audit_log": await list_audit_entries(session, application_id),
            }

        return await self._read(work, timeout)

    async def _candidate_of(self, application_id: int) -> int:
        async def work(session: AsyncSession):
            application = await application_service.load_application(session, application_id)
            return application.candidate_id

        return await self._read(work)

    async def transition(
        self,
        application_id: int,
        target_stage: Union[str, ApplicationStage],
        actor: Actor,
        reason: Optional[str] = None,
        hire: Optional[HireDetails] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Move an application through the state machine.

        Moving to hired also writes the placement and expires the governing
        relationship in the same transaction.
        """
        target = parse_stage(target_stage)
        lock_keys = [application_lock_key(application_id)]
        if target == ApplicationStage.HIRED:
            lock_keys.append(candidate_lock_key(await self._candidate_of(application_id)))

        async def work(session: AsyncSession, outbox: List[DomainEvent]):
            application = await application_service.load_application(
                session, application_id, for_update=True
            )
            outcome = await application_service.apply_transition(
                session,
                application,
                target,
                actor,
                at=self.now(),
                documents=self.documents,
                tiers=self.tiers,
                outbox=outbox,
                reason=reason,
                hire=hire,
            )
            return {
                "application": application_service.application_to_dict(outcome.application),
                "from_stage": outcome.from_stage.value,
                "changed": outcome.changed,
                "placement": placement_service.placement_to_dict(outcome.placement)
                if outcome.placement
                else None,
            }

        return await self._execute("transition", lock_keys, work, timeout)

    async def bulk_transition(
        self,
        application_ids: Sequence[int],
        target_stage: Union[str, ApplicationStage],
        actor: Actor,
        reason: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Per-item transitions; never all-or-nothing."""
        target = parse_stage(target_stage)

        async def handle(application_id: int) -> BulkItemResult:
            result = await self.transition(application_id, target, actor, reason=reason, timeout=timeout)
            return BulkItemResult(
                application_id=application_id,
                success=True,
                stage=result["application"]["stage"],
                changed=result["changed"],
            )

        results = await run_bulk(application_ids, handle, self.bulk_max_concurrency)
        return [r.to_dict() for r in results]

    async def accept_application(
        self, application_id: int, actor: Actor, timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        async def work(session: AsyncSession, outbox: List[DomainEvent]):
            application = await application_service.load_application(
                session, application_id, for_update=True
            )
            application, changed = visibility.accept_application(
                session, application, actor, self.now(), outbox
            )
            await session.flush()
            data = application_service.application_to_dict(application)
            data["changed"] = changed
            return data

        return await self._execute(
            "accept_application", [application_lock_key(application_id)], work, timeout
        )

    async def update_recruiter_notes(
        self,
        application_id: int,
        actor: Actor,
        notes: Optional[str],
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        async def work(session: AsyncSession, outbox: List[DomainEvent]):
            application = await application_service.load_application(
                session, application_id, for_update=True
            )
            await application_service.update_recruiter_notes(
                session, application, actor, notes, self.now()
            )
            await session.flush()
            return application_service.application_to_dict(application)

        return await self._execute(
            "update_recruiter_notes", [application_lock_key(application_id)], work, timeout
        )

    async def request_pre_screen(
        self,
        application_id: int,
        actor: Actor,
        recruiter_id: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        candidate_id = await self._candidate_of(application_id)

        async def work(session: AsyncSession, outbox: List[DomainEvent]):
            application = await application_service.load_application(
                session, application_id, for_update=True
            )
            application, relationship = await prescreen_service.request_pre_screen(
                session,
                application,
                actor,
                self.now(),
                outbox,
                relationship_duration_months=self.relationship_duration_months,
                recruiter_id=recruiter_id,
            )
            return {
                "application": application_service.application_to_dict(application),
                "relationship": relationship_service.relationship_to_dict(relationship),
            }

        return await self._execute(
            "request_pre_screen",
            [application_lock_key(application_id), candidate_lock_key(candidate_id)],
            work,
            timeout,
        )

    # ==================== Relationships ==================== #

    async def establish_relationship(
        self,
        recruiter_id: int,
        candidate_id: int,
        job_id: Optional[int] = None,
        consent_source: Optional[str] = None,
        actor: Optional[Actor] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        actor = actor or Actor.system()

        async def work(session: AsyncSession, outbox: List[DomainEvent]):
            relationship, created = await relationship_service.establish_relationship(
                session,
                recruiter_id=recruiter_id,
                candidate_id=candidate_id,
                job_id=job_id,
                consent_source=consent_source,
                actor=actor,
                at=self.now(),
                duration_months=self.relationship_duration_months,
                outbox=outbox,
            )
            return {
                "relationship": relationship_service.relationship_to_dict(relationship),
                "created": created,
            }

        return await self._execute(
            "establish_relationship", [candidate_lock_key(candidate_id)], work, timeout
        )

    async def _relationship_candidate(self, relationship_id: int) -> int:
        async def work(session: AsyncSession):
            relationship = await relationship_service.get_relationship(session, relationship_id)
            return relationship.candidate_id

        return await self._read(work)

    async def terminate_relationship(
        self,
        relationship_id: int,
        actor: Actor,
        reason: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        candidate_id = await self._relationship_candidate(relationship_id)

        async def work(session: AsyncSession, outbox: List[DomainEvent]):
            relationship, changed = await relationship_service.terminate_relationship(
                session, relationship_id, actor, self.now(), outbox, reason=reason
            )
            await session.flush()
            return {
                "relationship": relationship_service.relationship_to_dict(relationship),
                "changed": changed,
            }

        return await self._execute(
            "terminate_relationship", [candidate_lock_key(candidate_id)], work, timeout
        )

    async def renew_relationship(
        self, relationship_id: int, actor: Actor, timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        candidate_id = await self._relationship_candidate(relationship_id)

        async def work(session: AsyncSession, outbox: List[DomainEvent]):
            relationship = await relationship_service.renew_relationship(
                session,
                relationship_id,
                actor,
                self.now(),
                duration_months=self.relationship_duration_months,
            )
            await session.flush()
            return relationship_service.relationship_to_dict(relationship)

        return await self._execute(
            "renew_relationship", [candidate_lock_key(candidate_id)], work, timeout
        )

    async def get_relationship(
        self, relationship_id: int, timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        async def work(session: AsyncSession):
            relationship = await relationship_service.get_relationship(session, relationship_id)
            return relationship_service.relationship_to_dict(relationship)

        return await self._read(work, timeout)

    async def list_relationships(
        self,
        candidate_id: Optional[int] = None,
        recruiter_id: Optional[int] = None,
        status: Optional[Union[str, RelationshipStatus]] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        if status is not None and not isinstance(status, RelationshipStatus):
            try:
                status = RelationshipStatus(str(status).lower())
            except ValueError:
                raise InvalidInput(f"Unknown relationship status '{status}'", status=status)

        async def work(session: AsyncSession):
            rows = await relationship_service.list_relationships(
                session, candidate_id=candidate_id, recruiter_id=recruiter_id, status=status
            )
            return [relationship_service.relationship_to_dict(r) for r in rows]

        return await self._read(work, timeout)

    async def find_governing_relationship(
        self, candidate_id: int, job_id: int, timeout: Optional[float] = None
    ) -> Optional[Dict[str, Any]]:
        async def work(session: AsyncSession):
            relationship = await relationship_service.find_governing_relationship(
                session, candidate_id, job_id, self.now()
            )
            return relationship_service.relationship_to_dict(relationship) if relationship else None

        return await self._read(work, timeout)

    async def sweep_expired_relationships(
        self, actor: Optional[Actor] = None, timeout: Optional[float] = None
    ) -> int:
        """Expire every active relationship past its end date; returns how many."""
        actor = actor or Actor.system()

        async def work(session: AsyncSession, outbox: List[DomainEvent]):
            expired = await relationship_service.expire_stale_relationships(
                session, self.now(), actor, outbox
            )
            return len(expired)

        return await self._execute("sweep_expired_relationships", [], work, timeout)

    # ==================== Placements ==================== #

    async def get_placement(
        self, placement_id: int, timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        async def work(session: AsyncSession):
            placement = await placement_service.get_placement(session, placement_id)
            return placement_service.placement_to_dict(placement)

        return await self._read(work, timeout)

    async def get_placement_for_application(
        self, application_id: int, timeout: Optional[float] = None
    ) -> Optional[Dict[str, Any]]:
        async def work(session: AsyncSession):
            placement = await placement_service.find_placement_for_application(
                session, application_id
            )
            return placement_service.placement_to_dict(placement) if placement else None

        return await self._read(work, timeout)
