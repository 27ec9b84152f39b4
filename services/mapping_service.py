"""
Mapping engine: reconciles arbitrary spreadsheet layouts with the
destination schema.

Proposes a column mapping from header text, checks a (possibly
user-edited) mapping set, and validates/projects candidate rows.
Stateless; one instance is shared by every session.
"""

from typing import Any, Iterable, Optional
import structlog

from models.transaction import (
    DestinationField,
    REQUIRED_FIELDS,
    TransactionRow,
)
from models.mapping import (
    ColumnMapping,
    FormError,
    RowError,
    ValidationResult,
)
from exceptions import MappingError, ImportValidationError
from utils.text_utils import normalize_header, cell_text, clean_optional_text
from utils.normalizers import normalize_date, normalize_amount

logger = structlog.get_logger(__name__)

# Header row occupies line 1; first data row is line 2
ROW_NUMBER_OFFSET = 2

# Second-pass abbreviations, matched at the start or end of a normalized header
FIELD_ABBREVIATIONS: dict[DestinationField, tuple[str, ...]] = {
    DestinationField.DATE: ("posted", "dated"),
    DestinationField.DESCRIPTION: ("desc", "memo", "payee", "narrative", "details", "merchant"),
    DestinationField.AMOUNT: ("amt", "value", "total"),
    DestinationField.CATEGORY: ("cat", "tag"),
    DestinationField.DOCUMENT_ID: ("docid", "doc", "reference", "ref", "receipt"),
}

REQUIRED_MESSAGES = {
    DestinationField.DATE: "Date is required",
    DestinationField.DESCRIPTION: "Description is required",
    DestinationField.AMOUNT: "Amount is required",
}


class MappingService:
    """
    Column mapping and row validation.

    Handles:
    - Auto-proposal of a mapping from source headers
    - Form-level checks on a mapping set
    - Per-row validation and projection into TransactionRow
    """

    # ===================
    # PROPOSAL
    # ===================

    def propose_mapping(self, headers: Iterable[str]) -> list[ColumnMapping]:
        """
        Propose a best-effort mapping for every destination field.

        First pass: the first header whose normalized form contains, or is
        contained by, the normalized field name. Second pass, for fields
        still unmapped: a header starting or ending with a known
        abbreviation ("Amt" → amount), skipping headers already proposed.

        Args:
            headers: Source column headers in file order

        Returns:
            One ColumnMapping per destination field (source None if unmapped)
        """
        normalized = [
            (header, normalize_header(header))
            for header in headers
        ]
        # Empty normalized headers would be "contained" in every field name
        normalized = [(h, n) for h, n in normalized if n]

        proposal: dict[DestinationField, Optional[str]] = {}

        for destination in DestinationField:
            target = normalize_header(destination.value)
            proposal[destination] = next(
                (h for h, n in normalized if target in n or n in target),
                None
            )

        used = {source for source in proposal.values() if source}

        for destination in DestinationField:
            if proposal[destination] is not None:
                continue
            for header, norm in normalized:
                if header in used:
                    continue
                if any(
                    norm.startswith(abbr) or norm.endswith(abbr)
                    for abbr in FIELD_ABBREVIATIONS[destination]
                ):
                    proposal[destination] = header
                    used.add(header)
                    break

        logger.debug(
            "mapping_proposed",
            header_count=len(normalized),
            mapped=[d.value for d, s in proposal.items() if s]
        )

        return [
            ColumnMapping(destination=destination, source=proposal[destination])
            for destination in DestinationField
        ]

    def identity_mappings(self) -> list[ColumnMapping]:
        """Mapping for rows that already use destination field names."""
        return [
            ColumnMapping(destination=destination, source=destination.value)
            for destination in DestinationField
        ]

    # ===================
    # FORM CHECKS
    # ===================

    def check_mappings(self, mappings: list[ColumnMapping]) -> list[FormError]:
        """
        Check a mapping set before any row is touched.

        Rules:
        - A destination field may appear in at most one mapping
        - date, description and amount must each have a source column

        Returns:
            Form-level errors (empty if the mapping set is usable)
        """
        errors: list[FormError] = []

        counts: dict[DestinationField, int] = {}
        for mapping in mappings:
            counts[mapping.destination] = counts.get(mapping.destination, 0) + 1

        for destination in DestinationField:
            if counts.get(destination, 0) > 1:
                errors.append(FormError(
                    code="DUPLICATE_DESTINATION",
                    field=destination,
                    message=f"Destination field '{destination.value}' mapped more than once"
                ))

        sources = self._active_sources(mappings)
        for destination in REQUIRED_FIELDS:
            if destination not in sources and counts.get(destination, 0) <= 1:
                errors.append(FormError(
                    code="REQUIRED_FIELD_UNMAPPED",
                    field=destination,
                    message=f"Required field '{destination.value}' has no source column"
                ))

        return errors

    # ===================
    # VALIDATION
    # ===================

    def validate_rows(
        self,
        rows: list[dict[str, Any]],
        mappings: list[ColumnMapping]
    ) -> ValidationResult:
        """
        Validate candidate rows against a mapping set.

        Mapping errors block everything: no row is checked or projected.
        Otherwise every row is checked independently, so one bad row never
        hides another's errors.

        Args:
            rows: Candidate rows (source header -> raw value)
            mappings: Active mapping set

        Returns:
            ValidationResult with projected rows and all errors
        """
        form_errors = self.check_mappings(mappings)

        if form_errors:
            logger.info(
                "mapping_rejected",
                error_count=len(form_errors),
                codes=[e.code for e in form_errors]
            )
            return ValidationResult(form_errors=form_errors, total_rows=len(rows))

        sources = self._active_sources(mappings)
        result = ValidationResult(total_rows=len(rows))

        for index, row in enumerate(rows):
            row_num = index + ROW_NUMBER_OFFSET
            projected, row_errors = self._evaluate_row(row, sources, row_num)

            if row_errors:
                result.row_errors.extend(row_errors)
                result.invalid_rows.append(row_num)
            else:
                result.rows.append(projected)

        logger.info(
            "rows_validated",
            total=result.total_rows,
            valid=len(result.rows),
            invalid=len(result.invalid_rows)
        )

        return result

    def project_row(
        self,
        row: dict[str, Any],
        mappings: list[ColumnMapping],
        row_num: int = ROW_NUMBER_OFFSET
    ) -> TransactionRow:
        """
        Project one candidate row through a mapping set.

        Raises:
            MappingError: If the mapping set itself is invalid
            ImportValidationError: If the row has data errors
        """
        form_errors = self.check_mappings(mappings)
        if form_errors:
            raise MappingError([e.to_json_dict() for e in form_errors])

        projected, row_errors = self._evaluate_row(row, self._active_sources(mappings), row_num)
        if row_errors:
            raise ImportValidationError([e.to_json_dict() for e in row_errors])

        return projected

    # ===================
    # HELPER FUNCTIONS
    # ===================

    def _active_sources(self, mappings: list[ColumnMapping]) -> dict[DestinationField, str]:
        """Destination -> source header, for mappings that name a column."""
        return {
            m.destination: m.source
            for m in mappings
            if m.source
        }

    def _evaluate_row(
        self,
        row: dict[str, Any],
        sources: dict[DestinationField, str],
        row_num: int
    ) -> tuple[Optional[TransactionRow], list[RowError]]:
        """Check one row; return the projection (if clean) and its errors."""
        errors: list[RowError] = []

        def raw(destination: DestinationField) -> Any:
            source = sources.get(destination)
            return row.get(source) if source else None

        raw_date = cell_text(raw(DestinationField.DATE))
        date_value = None
        if not raw_date:
            errors.append(self._missing(DestinationField.DATE, row_num))
        else:
            date_value = normalize_date(raw_date)
            if date_value is None:
                errors.append(RowError(
                    row=row_num,
                    field=DestinationField.DATE,
                    message=f"Invalid date: '{raw_date}'",
                    value=raw_date
                ))

        description = cell_text(raw(DestinationField.DESCRIPTION))
        if not description:
            errors.append(self._missing(DestinationField.DESCRIPTION, row_num))

        amount_cell = raw(DestinationField.AMOUNT)
        raw_amount = cell_text(amount_cell)
        amount_value = None
        if not raw_amount:
            errors.append(self._missing(DestinationField.AMOUNT, row_num))
        else:
            amount_value = normalize_amount(
                amount_cell if isinstance(amount_cell, (int, float)) else raw_amount
            )
            if amount_value is None:
                errors.append(RowError(
                    row=row_num,
                    field=DestinationField.AMOUNT,
                    message=f"Invalid amount: '{raw_amount}'",
                    value=raw_amount
                ))

        if errors:
            return None, errors

        return TransactionRow(
            date=date_value,
            description=description,
            amount=amount_value,
            category=clean_optional_text(raw(DestinationField.CATEGORY)),
            document_id=clean_optional_text(raw(DestinationField.DOCUMENT_ID)),
        ), errors

    def _missing(self, destination: DestinationField, row_num: int) -> RowError:
        return RowError(
            row=row_num,
            field=destination,
            message=REQUIRED_MESSAGES[destination]
        )


# Singleton instance
_mapping_service: Optional[MappingService] = None


def get_mapping_service() -> MappingService:
    """Get or create MappingService instance."""
    global _mapping_service
    if _mapping_service is None:
        _mapping_service = MappingService()
    return _mapping_service
