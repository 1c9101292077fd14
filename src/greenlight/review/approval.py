"""Draft → approved document state machine.

Drafts move ``pending → approved`` or ``pending → rejected``; both are
terminal. Approving either creates a new ApprovedDocument at version 1 or,
for an update draft whose original still exists, bumps the original in
place to version + 1. Every approval appends one DocumentVersion row.

The document write, the version append and the draft status change run in
one transaction. Writes that touch the same approved document are
serialized by a per-document lock, and the version bump is guarded by an
optimistic ``WHERE version = ?`` check.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field

import structlog

from greenlight.ai.categorization import CategorizationService
from greenlight.db.models import ApprovedDocument, DocumentVersion, DraftDocument, DraftStatus
from greenlight.db.repository import Repository, utc_now
from greenlight.errors import AuthorizationError, InvalidTransitionError, NotFoundError
from greenlight.rag.indexer import EmbeddingIndexer, IndexResult

logger = structlog.get_logger(__name__)

MANAGER_ROLE = "manager"
DEFAULT_CATEGORY = "General Documents"

INITIAL_VERSION_NOTE = "Initial version"
EDITED_NOTE = "Edited during approval"
UPDATED_NOTE = "Document updated"
BATCH_NOTE = "Batch approved as generated"


@dataclass(frozen=True)
class Actor:
    """The user performing a review action."""

    user_id: str
    role: str = "member"

    @property
    def is_manager(self) -> bool:
        return self.role == MANAGER_ROLE


@dataclass
class ApprovalResult:
    draft_id: str
    document_id: str
    version: int
    is_update: bool
    category: str
    index: IndexResult | None = None

    @property
    def message(self) -> str:
        verb = "updated to" if self.is_update else "created at"
        return f"Draft {self.draft_id} approved; document {self.document_id} {verb} version {self.version}"


@dataclass
class BatchApprovalResult:
    approved: list[ApprovalResult] = field(default_factory=list)
    skipped_ids: list[str] = field(default_factory=list)

    @property
    def approved_ids(self) -> list[str]:
        return [r.draft_id for r in self.approved]

    @property
    def message(self) -> str:
        return f"Approved {len(self.approved)} draft(s); skipped {len(self.skipped_ids)}"


class DocumentLocks:
    """Registry of per-document locks shared by every approval service."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, document_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(document_id, threading.Lock())


class ApprovalService:
    """Approves, rejects and batch-approves drafts for one organization store.

    Args:
        repo: Open Repository instance.
        categorizer: Category suggestion collaborator. Its failures fall back
            to *default_category* and never block approval.
        indexer: Embedding indexer run after each committed approval. None
            skips indexing.
        locks: Shared per-document lock registry.
    """

    def __init__(
        self,
        repo: Repository,
        categorizer: CategorizationService | None = None,
        indexer: EmbeddingIndexer | None = None,
        locks: DocumentLocks | None = None,
        default_category: str = DEFAULT_CATEGORY,
    ) -> None:
        self._repo = repo
        self._categorizer = categorizer
        self._indexer = indexer
        self._locks = locks or DocumentLocks()
        self._default_category = default_category

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def approve(
        self,
        draft_id: str,
        actor: Actor,
        organization_id: str,
        edited_content: str | None = None,
    ) -> ApprovalResult:
        """Approve one pending draft.

        Raises:
            AuthorizationError: If *actor* is not a manager.
            NotFoundError: If the draft does not exist in *organization_id*.
            InvalidTransitionError: If the draft is not pending.
        """
        _require_manager(actor, "approve drafts")
        draft = self._load_pending(draft_id, organization_id)
        content = edited_content if edited_content is not None else draft.content
        category = self._suggest_category(draft, content)

        result = self._persist(draft, content, [category], actor, edited=edited_content is not None)
        result.category = category
        result.index = self._index(result.document_id, content)
        logger.info(
            "draft_approved",
            draft_id=draft_id,
            document_id=result.document_id,
            version=result.version,
            approved_by=actor.user_id,
        )
        return result

    def reject(self, draft_id: str, actor: Actor, organization_id: str) -> DraftDocument:
        """Reject one pending draft. No other row is touched."""
        _require_manager(actor, "reject drafts")
        self._load_pending(draft_id, organization_id)
        if not self._repo.mark_draft_rejected(draft_id):
            raise InvalidTransitionError(draft_id, "no longer pending")
        logger.info("draft_rejected", draft_id=draft_id, rejected_by=actor.user_id)
        return self._repo.get_draft(draft_id)

    def batch_approve(self, draft_ids: list[str], actor: Actor, organization_id: str) -> BatchApprovalResult:
        """Approve only those requested drafts that are pending AND green.

        Ids that do not qualify are skipped and reported, never raised. The
        honored drafts are committed together or not at all.
        """
        _require_manager(actor, "batch-approve drafts")
        eligible = self._repo.list_batch_eligible(draft_ids, organization_id)
        eligible_ids = {d.id for d in eligible}
        result = BatchApprovalResult(
            skipped_ids=[i for i in dict.fromkeys(draft_ids) if i not in eligible_ids],
        )

        with self._repo.transaction():
            for draft in eligible:
                approval = self._persist(draft, draft.content, list(draft.topics), actor, note=BATCH_NOTE)
                approval.category = draft.topics[0] if draft.topics else self._default_category
                result.approved.append(approval)

        for approval in result.approved:
            approval.index = self._index(approval.document_id, None)
        logger.info(
            "batch_approved",
            requested=len(draft_ids),
            approved=len(result.approved),
            skipped=len(result.skipped_ids),
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_pending(self, draft_id: str, organization_id: str) -> DraftDocument:
        draft = self._repo.get_draft(draft_id, organization_id)
        if draft is None:
            raise NotFoundError("Draft", draft_id)
        if draft.status != DraftStatus.PENDING:
            raise InvalidTransitionError(draft_id, draft.status.value)
        return draft

    def _suggest_category(self, draft: DraftDocument, content: str) -> str:
        if self._categorizer is None:
            return self._default_category
        try:
            return self._categorizer.suggest(draft.title, content, draft.organization_id).category
        except Exception as exc:
            logger.warning("category_suggestion_failed", draft_id=draft.id, error=str(exc))
            return self._default_category

    def _persist(
        self,
        draft: DraftDocument,
        content: str,
        tags: list[str],
        actor: Actor,
        edited: bool = False,
        note: str | None = None,
    ) -> ApprovalResult:
        """Write document + version + draft status atomically."""
        approved_at = utc_now()
        original_id = draft.original_document_id if draft.is_update else None

        if original_id is not None:
            with self._locks.lock_for(original_id):
                with self._repo.transaction():
                    original = self._repo.get_document(original_id, draft.organization_id)
                    if original is not None:
                        changes = note or _version_note(draft, edited, is_update=True)
                        return self._update_existing(draft, original, content, tags, actor, approved_at, changes)
                    logger.warning("original_document_missing", draft_id=draft.id, document_id=original_id)

        with self._repo.transaction():
            changes = note or _version_note(draft, edited, is_update=False)
            return self._insert_new(draft, content, tags, actor, approved_at, changes)

    def _update_existing(
        self,
        draft: DraftDocument,
        original: ApprovedDocument,
        content: str,
        tags: list[str],
        actor: Actor,
        approved_at: str,
        changes: str,
    ) -> ApprovalResult:
        previous_version = original.version
        original.content = content
        original.summary = draft.summary
        original.tags = tags
        original.version = previous_version + 1
        original.approved_by = actor.user_id
        original.approved_at = approved_at
        self._repo.update_document_version(original, expected_version=previous_version)
        self._append_version_and_close(draft, original.id, original.version, content, actor, approved_at, changes)
        return ApprovalResult(draft.id, original.id, original.version, True, tags[0] if tags else "")

    def _insert_new(
        self,
        draft: DraftDocument,
        content: str,
        tags: list[str],
        actor: Actor,
        approved_at: str,
        changes: str,
    ) -> ApprovalResult:
        doc = ApprovedDocument(
            id=str(uuid.uuid4()),
            organization_id=draft.organization_id,
            title=draft.title,
            content=content,
            summary=draft.summary,
            tags=tags,
            version=1,
            approved_by=actor.user_id,
            approved_at=approved_at,
            source_external_id=draft.source_external_id,
            source_draft_id=draft.id,
        )
        self._repo.add_document(doc)
        self._append_version_and_close(draft, doc.id, 1, content, actor, approved_at, changes)
        return ApprovalResult(draft.id, doc.id, 1, False, tags[0] if tags else "")

    def _append_version_and_close(
        self,
        draft: DraftDocument,
        document_id: str,
        version: int,
        content: str,
        actor: Actor,
        approved_at: str,
        changes: str,
    ) -> None:
        self._repo.add_version(
            DocumentVersion(
                document_id=document_id,
                version=version,
                content=content,
                changes=changes,
                approved_by=actor.user_id,
                approved_at=approved_at,
            )
        )
        if not self._repo.mark_draft_approved(draft.id, actor.user_id, approved_at):
            raise InvalidTransitionError(draft.id, "no longer pending")

    def _index(self, document_id: str, content: str | None) -> IndexResult | None:
        if self._indexer is None:
            return None
        try:
            return self._indexer.embed_document(document_id, content)
        except Exception as exc:
            logger.error("index_failed", document_id=document_id, error=str(exc))
            return IndexResult(document_id=document_id, status="failed", error=str(exc))


def _require_manager(actor: Actor, action: str) -> None:
    if not actor.is_manager:
        raise AuthorizationError(f"User '{actor.user_id}' must be a manager to {action}")


def _version_note(draft: DraftDocument, edited: bool, is_update: bool) -> str:
    if is_update and draft.changes_made:
        return "; ".join(draft.changes_made)
    if edited:
        return EDITED_NOTE
    if is_update:
        return UPDATED_NOTE
    return INITIAL_VERSION_NOTE
