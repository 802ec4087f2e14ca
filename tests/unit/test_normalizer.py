"""
Unit tests for CSV column normalization and the CSV note source
"""

import pandas as pd
import pytest
from datetime import date

from core.exceptions import FatalConfigurationError
from ingestion.sources.csv_source import CSVNoteSource
from ingestion.transformers.normalizer import ColumnNormalizer, compact_header


class TestColumnNormalizer:
    """Test header mapping and cell parsing"""

    @pytest.mark.parametrize("header, expected", [
        ("\ufeffdiagnosticCategory", "diagnosticcategory"),
        ("Diagnosis_ICD-10_Code", "diagnosisicd10code"),
        (" Patient ID ", "patientid"),
        ("sympProb", "sympprob"),
    ])
    def test_compact_header(self, header, expected):
        assert compact_header(header) == expected

    def test_symptom_library_row(self):
        row = {
            "symptomId": 1001.0,
            "symptomSegment": " Trouble sleeping ",
            "Diagnosis": "Insomnia",
            "\ufeffdiagnosticCategory": "Sleep",
            "Diagnosis_ICD-10_Code": "G47.00",
            "sympProb": "Symptom",
            "DSM_Symptom_Criteria": "ignored",
        }

        normalized = ColumnNormalizer.for_symptoms().normalize_record(row)

        assert normalized == {
            "symptom_id": "1001",
            "symptom_segment": "Trouble sleeping",
            "diagnosis": "Insomnia",
            "diagnostic_category": "Sleep",
            "diagnosis_icd10_code": "G47.00",
            "symp_prob": "Symptom",
        }

    def test_blank_and_nan_cells_become_none(self):
        normalized = ColumnNormalizer.for_symptoms().normalize_record(
            {"symptom_id": "S1", "symptom_segment": "cough", "diagnosis": "  ", "diagnostic_category": float("nan")}
        )

        assert normalized["diagnosis"] is None
        assert normalized["diagnostic_category"] is None

    def test_hrsn_category_normalised(self):
        normalizer = ColumnNormalizer.for_symptoms()

        assert normalizer.normalize_record({"hrsn_mapping": "Housing Status"})["hrsn_category"] == "housing_status"
        assert normalizer.normalize_record({"hrsn_mapping": "astrology"})["hrsn_category"] is None

    @pytest.mark.parametrize("value, expected", [
        ("2024-01-15", date(2024, 1, 15)),
        ("01/15/2024", date(2024, 1, 15)),
        (pd.Timestamp("2024-01-15 08:30"), date(2024, 1, 15)),
        ("not a date", None),
    ])
    def test_note_dates(self, value, expected):
        normalized = ColumnNormalizer.for_notes().normalize_record({"dosDate": value})

        assert normalized["dos_date"] == expected

    def test_rename_columns_drops_unknown(self):
        df = pd.DataFrame({"Patient_ID": [1], "Note_Text": ["cough"], "zip": ["12345"]})

        renamed = ColumnNormalizer.for_notes().rename_columns(df)

        assert list(renamed.columns) == ["patient_id", "note_text"]


class TestCSVNoteSource:
    """Test CSV-backed work units"""

    @pytest.mark.asyncio
    async def test_groups_notes_per_patient(self, tmp_path):
        path = tmp_path / "notes.csv"
        path.write_text(
            "\ufeffpatientId,dosDate,noteText,providerId\n"
            "P2,2024-01-02,trouble sleeping,D1\n"
            "P1,2024-01-01,chest pain,D1\n"
            "P2,2024-01-03,pain again,D2\n"
            ",2024-01-04,orphan note,D3\n",
            encoding="utf-8",
        )

        units = await CSVNoteSource(str(path), "clinic_1").list_units()

        assert [u.unit_id for u in units] == ["P1", "P2"]
        assert [n["note_text"] for n in units[1].payload] == ["trouble sleeping", "pain again"]
        assert units[0].payload[0]["dos_date"] == date(2024, 1, 1)

    @pytest.mark.asyncio
    async def test_get_unit(self, tmp_path):
        path = tmp_path / "notes.csv"
        path.write_text("patient_id,dos_date,note_text\n7,2024-01-01,cough\n", encoding="utf-8")

        unit = await CSVNoteSource(str(path), "clinic_1").get_unit("7")

        assert unit.payload[0]["patient_id"] == "7"

    @pytest.mark.asyncio
    async def test_missing_file_is_fatal(self, tmp_path):
        with pytest.raises(FatalConfigurationError):
            await CSVNoteSource(str(tmp_path / "missing.csv"), "clinic_1").list_units()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [
        "text,date\ncough,2024-01-01\n",
        # Known note columns, patient column missing
        "noteText,dosDate\ncough,2024-01-01\n",
        "noteId,noteText\nN1,cough\n",
    ])
    async def test_file_without_patient_column_is_fatal(self, tmp_path, content):
        path = tmp_path / "notes.csv"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(FatalConfigurationError):
            await CSVNoteSource(str(path), "clinic_1").list_units()

    def test_read_notes_without_patient_column_is_fatal(self, tmp_path):
        path = tmp_path / "notes.csv"
        path.write_text("noteText,dosDate\ncough,2024-01-01\n", encoding="utf-8")

        with pytest.raises(FatalConfigurationError):
            CSVNoteSource(str(path), "clinic_1").read_notes()
