"""
Unit tests for MappingService.

Run: pytest tests/unit/test_mapping_service.py -v
"""

import pytest
from decimal import Decimal

from services.mapping_service import MappingService, get_mapping_service
from models.transaction import DestinationField
from models.mapping import ColumnMapping
from exceptions import MappingError, ImportValidationError
from tests.factories import CandidateRowFactory


def _sources(mappings) -> dict:
    return {m.destination.value: m.source for m in mappings}


@pytest.fixture
def service() -> MappingService:
    return MappingService()


class TestProposeMapping:
    """Tests for MappingService.propose_mapping()"""

    def test_bank_export_headers(self, service):
        """Should map Date/Description/Amt/Category and leave document_id unmapped."""
        # Act
        result = service.propose_mapping(["Date", "Description", "Amt", "Category"])

        # Assert
        assert _sources(result) == {
            "date": "Date",
            "description": "Description",
            "amount": "Amt",
            "category": "Category",
            "document_id": None,
        }

    def test_one_mapping_per_destination(self, service):
        """Should always return one entry per destination field."""
        result = service.propose_mapping([])

        assert [m.destination for m in result] == list(DestinationField)
        assert all(m.source is None for m in result)

    def test_containment_both_ways(self, service):
        """Should match 'Transaction Date' and 'Document ID' by containment."""
        result = _sources(service.propose_mapping(["Transaction Date", "Document ID", "Amount (USD)"]))

        assert result["date"] == "Transaction Date"
        assert result["document_id"] == "Document ID"
        assert result["amount"] == "Amount (USD)"

    def test_first_matching_header_wins(self, service):
        """Should propose the first header in file order."""
        result = _sources(service.propose_mapping(["Posting Date", "Value Date"]))

        assert result["date"] == "Posting Date"

    def test_headers_that_normalize_to_empty_never_match(self, service):
        """Should not treat '#' or '' as contained in every field name."""
        result = _sources(service.propose_mapping(["#", "", "Memo"]))

        assert result["date"] is None
        assert result["amount"] is None
        assert result["description"] == "Memo"

    def test_abbreviation_does_not_steal_used_header(self, service):
        """Should not reuse a header already proposed in the first pass."""
        result = _sources(service.propose_mapping(["Description", "Ref No"]))

        assert result["description"] == "Description"
        assert result["document_id"] == "Ref No"

    def test_accented_headers(self, service):
        result = _sources(service.propose_mapping(["Fecha", "Descripción", "Amount"]))

        assert result["description"] == "Descripción"
        assert result["amount"] == "Amount"
        assert result["date"] is None

    def test_singleton(self):
        assert get_mapping_service() is get_mapping_service()


class TestCheckMappings:
    """Tests for MappingService.check_mappings()"""

    def test_valid_mapping_set(self, service):
        assert service.check_mappings(CandidateRowFactory.mappings()) == []

    def test_required_field_unmapped(self, service):
        """Should report amount as unmapped."""
        mappings = CandidateRowFactory.mappings(amount=None)

        errors = service.check_mappings(mappings)

        assert len(errors) == 1
        assert errors[0].code == "REQUIRED_FIELD_UNMAPPED"
        assert errors[0].field == DestinationField.AMOUNT

    def test_optional_fields_may_be_unmapped(self, service):
        mappings = CandidateRowFactory.mappings(category=None, document_id=None)

        assert service.check_mappings(mappings) == []

    def test_duplicate_destination(self, service):
        """Should flag a destination mapped twice as a form error."""
        mappings = CandidateRowFactory.mappings() + [
            ColumnMapping(destination=DestinationField.DATE, source="Description"),
        ]

        errors = service.check_mappings(mappings)

        assert [e.code for e in errors] == ["DUPLICATE_DESTINATION"]
        assert "mapped more than once" in errors[0].message

    def test_shared_source_is_allowed(self, service):
        """Should allow two destinations to read the same column."""
        mappings = CandidateRowFactory.mappings(category="Description")

        assert service.check_mappings(mappings) == []

    def test_unknown_destination_rejected_by_model(self):
        """Should reject destinations outside the schema at the model layer."""
        with pytest.raises(ValueError):
            ColumnMapping(destination="payee", source="Payee")


class TestValidateRows:
    """Tests for MappingService.validate_rows()"""

    def test_valid_row_projected(self, service):
        """Should project a clean row into a TransactionRow."""
        rows = [CandidateRowFactory.create(Description="Coffee")]

        result = service.validate_rows(rows, CandidateRowFactory.mappings())

        assert result.can_commit is True
        assert result.total_rows == 1
        row = result.rows[0]
        assert row.date == "2024-01-05"
        assert row.description == "Coffee"
        assert row.amount == Decimal("4.50")
        assert row.category == "Food"

    def test_empty_optional_field_absent(self, service):
        """Should leave a mapped but empty optional field absent, never ''."""
        rows = [CandidateRowFactory.create(Receipt="   ")]

        result = service.validate_rows(rows, CandidateRowFactory.mappings())

        assert result.rows[0].document_id is None
        assert "document_id" not in result.rows[0].to_record()

    def test_unmapped_optional_field_absent(self, service):
        rows = [CandidateRowFactory.create()]
        mappings = CandidateRowFactory.mappings(category=None)

        result = service.validate_rows(rows, mappings)

        assert result.rows[0].category is None

    def test_invalid_amount_reported_with_row_number(self, service):
        """Should report row 2 with field amount and the raw value."""
        rows = [CandidateRowFactory.create(Amt="abc")]

        result = service.validate_rows(rows, CandidateRowFactory.mappings())

        assert result.can_commit is False
        assert result.rows == []
        assert result.invalid_rows == [2]
        error = result.row_errors[0]
        assert error.row == 2
        assert error.field == DestinationField.AMOUNT
        assert "abc" in error.message
        assert error.value == "abc"

    def test_missing_description(self, service):
        rows = [CandidateRowFactory.create(Description="")]

        result = service.validate_rows(rows, CandidateRowFactory.mappings())

        assert [(e.row, e.field, e.message) for e in result.row_errors] == [
            (2, DestinationField.DESCRIPTION, "Description is required"),
        ]

    def test_invalid_date_names_raw_value(self, service):
        rows = [CandidateRowFactory.create(Date="someday")]

        result = service.validate_rows(rows, CandidateRowFactory.mappings())

        assert result.row_errors[0].field == DestinationField.DATE
        assert "someday" in result.row_errors[0].message

    def test_all_errors_of_a_row_reported(self, service):
        """Should report every problem in a row, not just the first."""
        rows = [CandidateRowFactory.create(Date="", Description="", Amt="")]

        result = service.validate_rows(rows, CandidateRowFactory.mappings())

        assert {e.field for e in result.row_errors} == {
            DestinationField.DATE,
            DestinationField.DESCRIPTION,
            DestinationField.AMOUNT,
        }

    def test_rows_checked_independently(self, service):
        """Should keep valid rows and number invalid ones index + 2."""
        rows = [
            CandidateRowFactory.create(),
            CandidateRowFactory.create(Amt="n/a"),
            CandidateRowFactory.create(),
            CandidateRowFactory.create(Date="??"),
        ]

        result = service.validate_rows(rows, CandidateRowFactory.mappings())

        assert len(result.rows) == 2
        assert result.invalid_rows == [3, 5]
        assert result.can_commit is False

    def test_form_errors_block_projection(self, service):
        """Should not check or project any row while the mapping is invalid."""
        rows = [CandidateRowFactory.create(Amt="abc")]
        mappings = CandidateRowFactory.mappings(date=None)

        result = service.validate_rows(rows, mappings)

        assert [e.code for e in result.form_errors] == ["REQUIRED_FIELD_UNMAPPED"]
        assert result.rows == []
        assert result.row_errors == []
        assert result.can_commit is False

    def test_no_rows_cannot_commit(self, service):
        result = service.validate_rows([], CandidateRowFactory.mappings())

        assert result.can_commit is False

    def test_numeric_cells_accepted(self, service):
        """Should accept numbers from JSON sources."""
        rows = [{"date": "2024-01-05", "description": "Refund", "amount": -12.25}]

        result = service.validate_rows(rows, service.identity_mappings())

        assert result.rows[0].amount == Decimal("-12.25")

    def test_to_dict_includes_can_commit(self, service):
        data = service.validate_rows(
            [CandidateRowFactory.create()],
            CandidateRowFactory.mappings()
        ).to_dict()

        assert data["can_commit"] is True
        assert data["rows"][0]["date"] == "2024-01-05"


class TestShortHeaderExport:
    """Proposal and validation for a Txn Date / Desc / Amt export"""

    HEADERS = ["Txn Date", "Desc", "Amt"]

    def test_proposal(self, service):
        """Should propose Txn Date, Desc and Amt for the required fields."""
        # Act
        result = _sources(service.propose_mapping(self.HEADERS))

        # Assert
        assert result["date"] == "Txn Date"
        assert result["description"] == "Desc"
        assert result["amount"] == "Amt"
        assert result["category"] is None
        assert result["document_id"] is None

    def test_clean_row(self, service):
        """Should produce one row dated 2024-03-14 for 4.50 with no errors."""
        # Arrange
        mappings = service.propose_mapping(self.HEADERS)
        rows = [{"Txn Date": "03/14/2024", "Desc": "Coffee", "Amt": "$4.50"}]

        # Act
        result = service.validate_rows(rows, mappings)

        # Assert
        assert result.form_errors == []
        assert result.row_errors == []
        assert result.can_commit is True
        assert [(r.date, r.description, r.amount) for r in result.rows] == [
            ("2024-03-14", "Coffee", Decimal("4.50")),
        ]
        assert result.to_dict()["rows"][0]["amount"] == 4.5

    def test_missing_date_and_bad_amount(self, service):
        """Should report both problems on row 2 and exclude the row."""
        # Arrange
        mappings = service.propose_mapping(self.HEADERS)
        rows = [{"Txn Date": "", "Desc": "Coffee", "Amt": "abc"}]

        # Act
        result = service.validate_rows(rows, mappings)

        # Assert
        assert [(e.row, e.field) for e in result.row_errors] == [
            (2, DestinationField.DATE),
            (2, DestinationField.AMOUNT),
        ]
        assert "abc" in result.row_errors[1].message
        assert result.rows == []
        assert result.invalid_rows == [2]
        assert result.can_commit is False

    def test_time_column_is_not_a_date(self, service):
        """Should flag a mis-mapped time column instead of dating it today."""
        mappings = service.propose_mapping(self.HEADERS)
        rows = [{"Txn Date": "12:30", "Desc": "Coffee", "Amt": "4.50"}]

        result = service.validate_rows(rows, mappings)

        assert [(e.row, e.field, e.value) for e in result.row_errors] == [
            (2, DestinationField.DATE, "12:30"),
        ]


class TestProjectRow:
    """Tests for MappingService.project_row()"""

    def test_projects_clean_row(self, service):
        row = service.project_row(CandidateRowFactory.create(), CandidateRowFactory.mappings())

        assert row.amount == Decimal("4.50")

    def test_invalid_mapping_raises(self, service):
        with pytest.raises(MappingError) as exc_info:
            service.project_row(CandidateRowFactory.create(), CandidateRowFactory.mappings(amount=None))

        assert exc_info.value.details["errors"][0]["code"] == "REQUIRED_FIELD_UNMAPPED"

    def test_invalid_row_raises_with_row_number(self, service):
        with pytest.raises(ImportValidationError) as exc_info:
            service.project_row(
                CandidateRowFactory.create(Amt="abc"),
                CandidateRowFactory.mappings(),
                row_num=7
            )

        assert exc_info.value.details["errors"][0]["row"] == 7
