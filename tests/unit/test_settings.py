"""
Tests for engine settings and generation history.
"""

import base64
from io import BytesIO

import pytest
from PIL import Image

from node_banana.core.history import (
    GenerationHistory,
    HistoryRecord,
    generation_filename,
    load_generation,
    save_generation,
)
from node_banana.core.settings import EngineSettings, load_settings, save_settings


class TestEngineSettings:

    def test_defaults(self):
        settings = EngineSettings()
        assert settings.max_in_flight == 3
        assert settings.image_timeout == 300.0
        assert settings.text_timeout == 60.0
        assert settings.history_size == 50
        assert settings.generations_dir is None

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            EngineSettings(max_in_flight=0)

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "settings.json"
        save_settings(EngineSettings(max_in_flight=5, image_timeout=120), path)
        loaded = load_settings(path)
        assert loaded.max_in_flight == 5
        assert loaded.image_timeout == 120.0

    def test_generations_dir_round_trip(self, tmp_path):
        path = tmp_path / "settings.json"
        save_settings(EngineSettings(generations_dir="/data/generations"), path)
        assert load_settings(path).generations_dir == "/data/generations"

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_settings(tmp_path / "nope.json") == EngineSettings()

    def test_partial_file(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text('{"text_timeout": 10}')
        assert load_settings(path) == EngineSettings(text_timeout=10.0)


class TestGenerationHistory:

    def test_most_recent_first(self):
        history = GenerationHistory()
        history.append(HistoryRecord(image="a", prompt="p", model="m"))
        history.append(HistoryRecord(image="b", prompt="p", model="m"))
        assert [r.image for r in history.items] == ["b", "a"]

    def test_bounded(self):
        history = GenerationHistory(max_items=2)
        for image in "abc":
            history.append(HistoryRecord(image=image, prompt="", model="m"))
        assert [r.image for r in history.items] == ["c", "b"]
        assert history.max_items == 2

    def test_records_have_ids_and_timestamps(self):
        a = HistoryRecord(image="a", prompt="", model="m")
        b = HistoryRecord(image="a", prompt="", model="m")
        assert a.id != b.id
        assert a.timestamp > 0

    def test_clear(self):
        history = GenerationHistory()
        history.append(HistoryRecord(image="a", prompt="", model="m"))
        history.clear()
        assert len(history) == 0


class TestSavedGenerations:

    PNG = "data:image/png;base64," + base64.b64encode(b"\x89PNG fake").decode()

    def test_filename_from_id(self):
        assert generation_filename("a cat", "abc123") == "abc123.png"

    def test_filename_from_prompt(self):
        name = generation_filename("A cat, wearing a HAT!", timestamp=0)
        assert name == "1970-01-01T00-00-00_a_cat_wearing_a_hat.png"

    def test_filename_without_prompt(self):
        assert generation_filename(None, timestamp=0).endswith("_generation.png")

    def test_save_and_load_by_id(self, tmp_path):
        path = save_generation(tmp_path, self.PNG, "a cat", "gen-1")

        assert path == tmp_path / "gen-1.png"
        assert path.read_bytes() == b"\x89PNG fake"
        assert load_generation(tmp_path, "gen-1") == self.PNG

    def test_jpeg_is_stored_as_png(self, tmp_path):
        buffer = BytesIO()
        Image.new("RGB", (4, 4), "red").save(buffer, format="JPEG")
        jpeg = "data:image/jpeg;base64," + base64.b64encode(buffer.getvalue()).decode()

        path = save_generation(tmp_path, jpeg, generation_id="photo")

        with Image.open(path) as img:
            assert img.format == "PNG"
            assert img.size == (4, 4)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            save_generation(tmp_path / "absent", self.PNG)

    def test_path_is_not_a_directory(self, tmp_path):
        file_path = tmp_path / "file.txt"
        file_path.write_text("x")
        with pytest.raises(NotADirectoryError):
            save_generation(file_path, self.PNG)

    def test_unknown_id(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_generation(tmp_path, "missing")

    def test_id_must_be_a_file_name(self, tmp_path):
        with pytest.raises(ValueError):
            load_generation(tmp_path, "../secrets")
