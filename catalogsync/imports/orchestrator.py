"""Import orchestrator - drives catalog rows through the matching pipeline.

Per run: CatalogUpload PENDING -> PROCESSING -> COMPLETED | FAILED.
Per row (own transaction): Matcher -> DecisionPolicy -> CatalogWriter, then
best-effort enrichment after the row has committed.

Failure handling:
- A CatalogError on one row is recorded on that row and the run continues
- Any other exception is run-level fatal: remaining rows are skipped, rows
  already committed stay committed, and the upload is marked FAILED
- The upload record is finalized from a finally block, so a crash never
  leaves it PROCESSING
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalogsync.catalog.writer import CatalogWriter
from catalogsync.db.connection import session_scope
from catalogsync.db.models import ProductModel, utcnow
from catalogsync.enrichment.trigger import EnrichmentTrigger
from catalogsync.exceptions import (
    CatalogError,
    DuplicateLinkError,
    DuplicateProductError,
    RowValidationError,
)
from catalogsync.imports.audit import CatalogUploadRepository
from catalogsync.ingestion.parser import parse_catalog
from catalogsync.matching.auto_router import DecisionPolicy
from catalogsync.matching.matcher import ProductMatcher
from catalogsync.models import (
    DecisionAction,
    ImportOptions,
    ImportResult,
    ImportRow,
    MatchMethod,
    RowError,
    RowResult,
    UploadStatus,
    VerificationStatus,
)

logger = logging.getLogger(__name__)


class ImportOrchestrator:
    """Runs supplier catalog imports.

    All collaborators are passed in; the orchestrator keeps no state between
    runs, so one instance can serve many suppliers.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        matcher: ProductMatcher,
        uploads: CatalogUploadRepository | None = None,
        enrichment: EnrichmentTrigger | None = None,
        defaults: ImportOptions | None = None,
    ):
        """Initialize orchestrator.

        Args:
            session_factory: Session factory; one session per row
            matcher: Product matcher
            uploads: Audit repository (defaults to one on session_factory)
            enrichment: Enrichment trigger; None disables enrichment
            defaults: Options used when a call passes none
        """
        self.session_factory = session_factory
        self.matcher = matcher
        self.uploads = uploads or CatalogUploadRepository(session_factory)
        self.enrichment = enrichment
        self.defaults = defaults or ImportOptions()

    async def import_csv(
        self,
        global_supplier_id: UUID,
        content: str,
        filename: str = "catalog.csv",
        options: ImportOptions | None = None,
    ) -> ImportResult:
        """Parse raw catalog text and import it.

        The raw text is stored on the upload record for replay.
        """
        options = options or self.defaults
        try:
            rows, rejected = parse_catalog(
                content,
                skip_invalid_rows=options.skip_invalid_rows,
                default_currency=options.default_currency,
            )
        except (CatalogError, ValueError) as exc:
            logger.error(f"Could not parse {filename}: {exc}")
            return await self._failed_before_rows(global_supplier_id, filename, content, options, str(exc))

        return await self.import_catalog(
            global_supplier_id,
            rows,
            options=options,
            filename=filename,
            raw_content=content,
            rejected=rejected,
        )

    async def replay_upload(self, upload_id: UUID, options: ImportOptions | None = None) -> ImportResult:
        """Re-run a previous upload from its retained raw content as a new run.

        Raises:
            RecordNotFoundError: If the upload does not exist
            CatalogError: If the upload kept no raw content
        """
        upload = await self.uploads.get(upload_id)
        if not upload.raw_content:
            raise CatalogError(f"Upload {upload_id} has no retained raw content to replay")

        logger.info(f"Replaying upload {upload_id} ({upload.filename})")
        return await self.import_csv(
            upload.global_supplier_id,
            upload.raw_content,
            filename=f"{upload.filename} (replay of {upload_id})",
            options=options,
        )

    async def import_catalog(
        self,
        global_supplier_id: UUID,
        rows: list[ImportRow],
        options: ImportOptions | None = None,
        filename: str = "direct-import",
        raw_content: str | None = None,
        rejected: list[RowError] | None = None,
    ) -> ImportResult:
        """Import already-parsed rows for one supplier.

        Args:
            global_supplier_id: Supplier whose catalog this is
            rows: Parsed rows
            options: Import policy (defaults from constructor)
            filename: Name recorded on the upload
            raw_content: Original text, retained for replay
            rejected: Rows the parser already rejected (reported as failures)

        Returns:
            ImportResult with per-row detail; never raises for row or run
            failures (status FAILED carries the message instead)
        """
        options = options or self.defaults
        rejected = list(rejected or [])
        result = ImportResult(
            global_supplier_id=global_supplier_id,
            status=UploadStatus.PROCESSING,
            started_at=utcnow(),
            total_rows=len(rows) + len(rejected),
        )
        upload_id: UUID | None = None
        fatal: str | None = None

        logger.info(
            f"Starting import for supplier {global_supplier_id}: {result.total_rows} rows "
            f"({filename}, create_new={options.create_new_products}, "
            f"min_confidence={options.min_auto_match_confidence})"
        )

        try:
            upload = await self.uploads.create(
                global_supplier_id,
                filename,
                row_count=result.total_rows,
                raw_content=raw_content,
                uploaded_by=options.actor,
            )
            upload_id = upload.id
            result.upload_id = upload_id
            await self.uploads.mark_processing(upload_id)

            for error in rejected:
                result.items.append(RowResult(row_index=error.row_index, errors=[error.message]))

            writer = CatalogWriter(actor=options.actor)
            policy = DecisionPolicy(options.min_auto_match_confidence, options.create_new_products)

            for row in rows:
                if not row.name.strip():
                    result.items.append(RowResult(row_index=row.row_index, errors=["Name is required"]))
                    if not options.skip_invalid_rows:
                        raise RowValidationError(row.row_index, "Name is required")
                    continue
                if row.currency is None:
                    row = row.model_copy(update={"currency": options.default_currency})

                try:
                    item = await self._process_row(global_supplier_id, row, options, writer, policy)
                except Exception as exc:
                    result.items.append(
                        RowResult(row_index=row.row_index, errors=[f"Processing error: {exc}"])
                    )
                    raise
                result.items.append(item)

        except Exception as exc:
            fatal = str(exc) or type(exc).__name__
            logger.error(f"Import for supplier {global_supplier_id} failed: {fatal}", exc_info=True)

        finally:
            self._tally(result)
            result.completed_at = utcnow()
            result.status = UploadStatus.FAILED if fatal else UploadStatus.COMPLETED
            result.error_message = fatal
            if upload_id is not None:
                await self._record_outcome(upload_id, result)

        logger.info(
            f"Import {result.upload_id} {result.status.value}: total={result.total_rows} "
            f"success={result.success_count} failed={result.failed_count} "
            f"review={result.review_count} enriched={result.enriched_count}"
        )
        return result

    async def _process_row(
        self,
        global_supplier_id: UUID,
        row: ImportRow,
        options: ImportOptions,
        writer: CatalogWriter,
        policy: DecisionPolicy,
    ) -> RowResult:
        item = RowResult(row_index=row.row_index, warnings=list(row.warnings))

        try:
            try:
                product = await self._write_row(global_supplier_id, row, writer, policy, item)
            except (DuplicateLinkError, DuplicateProductError) as exc:
                # Another run committed the same product or link first; the
                # second pass matches against it
                logger.info(f"Row {row.row_index}: {exc}; retrying against committed state")
                product = await self._write_row(global_supplier_id, row, writer, policy, item)
        except CatalogError as exc:
            item.success = False
            item.errors.append(str(exc))
            logger.warning(f"Row {row.row_index} failed: {exc}")
            return item

        if product is None:
            return item

        if (
            options.auto_enrich
            and self.enrichment is not None
            and product.gtin
            and product.verification_status != VerificationStatus.VERIFIED.value
        ):
            enrichment = await self.enrichment.enrich(product.id)
            item.enriched = enrichment.success
            item.warnings.extend(enrichment.warnings)
            item.warnings.extend(enrichment.errors)

        return item

    async def _write_row(
        self,
        global_supplier_id: UUID,
        row: ImportRow,
        writer: CatalogWriter,
        policy: DecisionPolicy,
        item: RowResult,
    ) -> ProductModel | None:
        """Match, decide and write one row in its own transaction.

        Returns the linked product, or None when the row needs a decision
        nobody is allowed to make (no match, creation disabled).
        """
        async with session_scope(self.session_factory) as session:
            match = await self.matcher.match(session, row, global_supplier_id)
            decision = policy.decide(match)

            item.match_method = match.match_method
            item.match_confidence = match.match_confidence
            item.needs_review = decision.needs_review

            if decision.action is DecisionAction.REVIEW:
                item.errors.append(decision.reason)
                logger.info(f"Row {row.row_index} ({row.name!r}): {decision.reason}")
                return None

            if decision.action is DecisionAction.CREATE_NEW:
                product, link = await writer.create_new(session, global_supplier_id, row)
                item.match_method = MatchMethod.NONE
                item.match_confidence = 1.0
            else:
                product = await session.get(ProductModel, match.product_id)
                link, _ = await writer.upsert_link(
                    session,
                    global_supplier_id=global_supplier_id,
                    product_id=match.product_id,
                    row=row,
                    match_method=match.match_method,
                    match_confidence=match.match_confidence,
                    needs_review=decision.needs_review,
                )

            item.product_id = product.id
            item.supplier_item_id = link.id

        item.success = True
        if decision.needs_review:
            logger.info(f"Row {row.row_index} ({row.name!r}) flagged for review: {decision.reason}")
        return product

    @staticmethod
    def _tally(result: ImportResult) -> None:
        result.success_count = sum(1 for item in result.items if item.success)
        result.failed_count = sum(1 for item in result.items if not item.success)
        result.review_count = sum(1 for item in result.items if item.needs_review)
        result.enriched_count = sum(1 for item in result.items if item.enriched)

    async def _record_outcome(self, upload_id: UUID, result: ImportResult) -> None:
        counts = {
            "success_count": result.success_count,
            "failed_count": result.failed_count,
            "review_count": result.review_count,
            "enriched_count": result.enriched_count,
        }
        try:
            if result.status is UploadStatus.FAILED:
                await self.uploads.mark_failed(upload_id, result.error_message or "Import failed", **counts)
            else:
                await self.uploads.mark_completed(upload_id, **counts)
        except Exception:
            # The caller still gets the per-row result; the audit row is stale
            logger.exception(f"Could not finalize upload record {upload_id}")

    async def _failed_before_rows(
        self,
        global_supplier_id: UUID,
        filename: str,
        content: str,
        options: ImportOptions,
        message: str,
    ) -> ImportResult:
        result = ImportResult(
            global_supplier_id=global_supplier_id,
            status=UploadStatus.FAILED,
            started_at=utcnow(),
            completed_at=utcnow(),
            error_message=message,
        )
        try:
            upload = await self.uploads.create(
                global_supplier_id, filename, row_count=0, raw_content=content, uploaded_by=options.actor
            )
            result.upload_id = upload.id
            await self.uploads.mark_failed(upload.id, message)
        except Exception:
            logger.exception(f"Could not record failed upload {filename}")
        return result
