"""Tests for import_utils module."""

import json
import logging
import tempfile
from pathlib import Path
from typing import Any

import pytest

from oracle_lens.card_store import CardStore
from oracle_lens.import_utils import import_cards_streaming, iter_card_records


def write_json(path: Path, cards: list[dict[str, Any]]) -> Path:
    with open(path, "w") as f:
        json.dump(cards, f)
    return path


class TestImportCardsStreaming:
    """Test the streaming bulk file import."""

    def test_import_basic(self, sample_cards: list[dict[str, Any]]):
        """Should import every card in the file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpdir_path = Path(tmpdir)
            json_file = write_json(tmpdir_path / "oracle-cards.json", sample_cards)

            with CardStore(tmpdir_path / "cards.db") as store:
                count = import_cards_streaming(json_file, store)

                assert count == len(sample_cards)
                assert store.get_card_count() == len(sample_cards)

    def test_import_with_progress_callback(self):
        """Should report cumulative counts once per batch."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpdir_path = Path(tmpdir)
            cards = [
                {"oracle_id": str(i), "name": f"Card {i}", "cmc": i % 5, "colors": []}
                for i in range(1500)
            ]
            json_file = write_json(tmpdir_path / "cards.json", cards)

            progress_calls: list[int] = []

            with CardStore(tmpdir_path / "cards.db") as store:
                count = import_cards_streaming(
                    json_file, store, progress_callback=progress_calls.append
                )

            assert count == 1500
            assert progress_calls == [1000, 1500]

    def test_custom_batch_size(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpdir_path = Path(tmpdir)
            cards = [{"oracle_id": str(i), "name": f"Card {i}"} for i in range(5)]
            json_file = write_json(tmpdir_path / "cards.json", cards)

            progress_calls: list[int] = []

            with CardStore(tmpdir_path / "cards.db") as store:
                import_cards_streaming(
                    json_file, store, batch_size=2, progress_callback=progress_calls.append
                )

            assert progress_calls == [2, 4, 5]

    def test_decimal_cmc_rounded(self):
        """ijson yields Decimal numbers; mana values are stored as integers."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpdir_path = Path(tmpdir)
            json_file = tmpdir_path / "cards.json"
            json_file.write_text(
                '[{"oracle_id": "lg", "name": "Little Girl", "cmc": 0.5, "colors": ["W"]},'
                ' {"oracle_id": "gy", "name": "Tarmogoyf", "cmc": 2.0, "colors": ["G"]}]'
            )

            with CardStore(tmpdir_path / "cards.db") as store:
                import_cards_streaming(json_file, store)

                assert store.get_card_by_id("lg").mana_value == 1
                assert store.get_card_by_id("gy").mana_value == 2

    def test_import_empty_array(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpdir_path = Path(tmpdir)
            json_file = write_json(tmpdir_path / "cards.json", [])

            with CardStore(tmpdir_path / "cards.db") as store:
                assert import_cards_streaming(json_file, store) == 0

    def test_reimport_updates_in_place(self, sample_cards: list[dict[str, Any]]):
        """Importing the same file twice does not duplicate cards."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpdir_path = Path(tmpdir)
            json_file = write_json(tmpdir_path / "cards.json", sample_cards)

            with CardStore(tmpdir_path / "cards.db") as store:
                import_cards_streaming(json_file, store)
                import_cards_streaming(json_file, store)

                assert store.get_card_count() == len(sample_cards)

    def test_missing_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpdir_path = Path(tmpdir)

            with CardStore(tmpdir_path / "cards.db") as store:
                with pytest.raises(FileNotFoundError):
                    import_cards_streaming(tmpdir_path / "missing.json", store)

    def test_skips_objects_without_name(self, caplog):
        """Bulk objects missing a name are skipped, the rest still import."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpdir_path = Path(tmpdir)
            json_file = write_json(
                tmpdir_path / "cards.json",
                [
                    {"oracle_id": "1", "name": "Opt", "colors": ["U"]},
                    {"oracle_id": "2", "object": "card"},
                    {"oracle_id": "3", "name": "Shock", "colors": ["R"]},
                ],
            )

            with caplog.at_level(logging.WARNING, logger="oracle_lens.import_utils"):
                with CardStore(tmpdir_path / "cards.db") as store:
                    assert import_cards_streaming(json_file, store) == 2
                    assert store.get_card_by_id("2") is None

            assert "Skipped 1 bulk objects" in caplog.text


class TestIterCardRecords:
    """Test conversion of bulk objects to records."""

    def test_converts_scryfall_objects(self, lightning_bolt: dict[str, Any]):
        records = list(iter_card_records([lightning_bolt]))

        assert records[0].name == "Lightning Bolt"
        assert records[0].colors == frozenset({"R"})

    def test_falls_back_to_scryfall_id(self):
        records = list(iter_card_records([{"id": "print-1", "name": "Opt"}]))

        assert records[0].id == "print-1"

    def test_skips_without_any_id(self):
        assert list(iter_card_records([{"name": "Nameless"}])) == []
