"""
Idempotent writes keyed by natural key (existence check, then insert)
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import (
    LoadError,
    FatalConfigurationError,
    TransientStoreError,
    wrap_database_error,
)
from models.base import Base
from models.clinical_note import ClinicalNote
from models.extracted_symptom import ExtractedSymptom
from models.symptom_master import SymptomMaster
from schemas.records import (
    ClinicalNoteCreate,
    ExtractedSymptomCreate,
    RecordBase,
    SymptomMasterCreate,
    normalize_key_value,
    project_natural_key,
)
from schemas.run import ImportResult, LoadResult, RowOutcome, WriteOutcome
import logging

logger = logging.getLogger(__name__)


# record_type tag -> (ORM model, validation schema)
RECORD_TARGETS: Dict[str, Tuple[Type[Base], Type[RecordBase]]] = {
    "extracted_symptom": (ExtractedSymptom, ExtractedSymptomCreate),
    "symptom_master": (SymptomMaster, SymptomMasterCreate),
    "clinical_note": (ClinicalNote, ClinicalNoteCreate),
}

Target = Union[str, Type[Base]]


class DedupLoader:
    """
    Write records so that repeating a write never duplicates a row.

    Ensures:
    - A natural-key match is skipped, never inserted twice
    - Optional key fields compare NULL-equal (IS NOT DISTINCT FROM)
    - Every added row is committed before the call returns
    - A uniqueness violation raised by a concurrent writer counts as skipped
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ------------------------------------------------------------------
    # Single-record primitives
    # ------------------------------------------------------------------

    async def exists(
        self,
        model: Type[Base],
        natural_key_fields: Sequence[str],
        key: Sequence[Any]
    ) -> bool:
        """True if a row with this natural key is already stored"""
        conditions = [
            getattr(model, field).is_not_distinct_from(value)
            for field, value in zip(natural_key_fields, key)
        ]
        result = await self.db.execute(select(model.id).where(*conditions).limit(1))
        return result.first() is not None

    async def insert_if_absent(
        self,
        model: Type[Base],
        row: Mapping[str, Any],
        natural_key_fields: Sequence[str]
    ) -> WriteOutcome:
        """
        Insert one row unless its natural key is already present.

        Returns:
            WriteOutcome.ADDED or WriteOutcome.SKIPPED

        Raises:
            TransientStoreError: Store unreachable; the row was not written
            DatabaseError: Any other storage failure
        """
        key = project_natural_key(row, natural_key_fields)
        context = {
            "operation": "INSERT",
            "table_name": model.__tablename__,
            "natural_key": key,
        }

        try:
            if await self.exists(model, natural_key_fields, key):
                return WriteOutcome.SKIPPED
        except Exception as e:
            await self.db.rollback()
            raise wrap_database_error(e, "Existence check failed", context=context)

        values = dict(row)
        for field, value in zip(natural_key_fields, key):
            values[field] = value

        try:
            self.db.add(model(**values))
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            conflict = wrap_database_error(e, "Natural key already stored", context=context)
            logger.info(
                f"Uniqueness conflict on {model.__tablename__}, counted as skipped",
                extra={"error_context": conflict.to_dict()}
            )
            return WriteOutcome.SKIPPED
        except Exception as e:
            await self.db.rollback()
            raise wrap_database_error(e, "Insert failed", context=context)

        return WriteOutcome.ADDED

    # ------------------------------------------------------------------
    # Derived records
    # ------------------------------------------------------------------

    async def write_records(self, records: Iterable[RecordBase]) -> LoadResult:
        """
        Write tagged records one transaction each.

        A failed write is counted errored and the remaining records are
        still attempted; the caller decides what an errored write means for
        the unit.
        """
        result = LoadResult()

        for record in records:
            model, _ = self._resolve_target(record.record_type)
            try:
                outcome = await self.insert_if_absent(
                    model, record.to_row(), record.NATURAL_KEY_FIELDS
                )
            except LoadError as e:
                result.errored += 1
                result.errors.append(e.message)
                logger.error(
                    f"Write failed for {record.record_type} {record.natural_key()}: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                continue

            if outcome == WriteOutcome.ADDED:
                result.added += 1
            else:
                result.skipped += 1

        return result

    # ------------------------------------------------------------------
    # Batch import
    # ------------------------------------------------------------------

    async def import_batch(
        self,
        rows: Iterable[Mapping[str, Any]],
        natural_key_fields: Sequence[str],
        target: Target,
        schema: Optional[Type[BaseModel]] = None
    ) -> ImportResult:
        """
        Import candidate rows, skipping those whose natural key is stored.

        Args:
            rows: Input mappings (CSV rows, API payload)
            natural_key_fields: Columns forming the natural key
            target: record_type tag or ORM model class
            schema: Validation model; defaults to the target's registered one

        Returns:
            ImportResult with added/skipped/errored and a RowOutcome per row

        Raises:
            FatalConfigurationError: Unknown target or key field
            TransientStoreError: Store unreachable mid-batch (rows already
                added stay added; re-running the batch skips them)
        """
        model, default_schema = self._resolve_target(target)
        schema = schema or default_schema
        columns = self._column_names(model)

        unknown = [field for field in natural_key_fields if field not in columns]
        if not natural_key_fields or unknown:
            raise FatalConfigurationError(
                "Invalid natural key fields",
                context={"table_name": model.__tablename__, "unknown_fields": unknown}
            )

        result = ImportResult()

        for index, raw in enumerate(rows):
            try:
                row = self._prepare_row(raw, schema, columns)
            except (ValidationError, ValueError, TypeError) as e:
                result.record(RowOutcome(index=index, outcome=WriteOutcome.ERRORED, error=str(e)))
                logger.warning(f"Row {index} rejected for {model.__tablename__}: {e}")
                continue

            key = project_natural_key(row, natural_key_fields)
            try:
                outcome = await self.insert_if_absent(model, row, natural_key_fields)
            except TransientStoreError:
                raise
            except LoadError as e:
                result.record(RowOutcome(
                    index=index,
                    outcome=WriteOutcome.ERRORED,
                    natural_key=key,
                    error=e.message
                ))
                logger.error(
                    f"Row {index} failed for {model.__tablename__}: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                continue

            result.record(RowOutcome(index=index, outcome=outcome, natural_key=key))

            if (index + 1) % settings.IMPORT_BATCH_SIZE == 0:
                logger.info(
                    f"Import progress {model.__tablename__}: {index + 1} rows "
                    f"(added={result.added}, skipped={result.skipped}, errored={result.errored})"
                )

        logger.info(
            f"Imported into {model.__tablename__}: added={result.added}, "
            f"skipped={result.skipped}, errored={result.errored}"
        )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_target(target: Target) -> Tuple[Type[Base], Optional[Type[RecordBase]]]:
        if isinstance(target, str):
            if target not in RECORD_TARGETS:
                raise FatalConfigurationError(
                    "Unknown record type",
                    context={"record_type": target}
                )
            return RECORD_TARGETS[target]

        for model, schema in RECORD_TARGETS.values():
            if model is target:
                return model, schema
        return target, None

    @staticmethod
    def _column_names(model: Type[Base]) -> List[str]:
        return [column.key for column in sa_inspect(model).columns]

    @staticmethod
    def _prepare_row(
        raw: Mapping[str, Any],
        schema: Optional[Type[BaseModel]],
        columns: Sequence[str]
    ) -> Dict[str, Any]:
        """Validate a raw row and keep only the target's columns"""
        if schema is not None:
            validated = schema.model_validate(dict(raw))
            if isinstance(validated, RecordBase):
                data = validated.to_row()
            else:
                data = validated.model_dump()
        else:
            data = {key: normalize_key_value(value) for key, value in raw.items()}

        return {key: value for key, value in data.items() if key in columns}
