"""
Unit tests for ConfigManager YAML loading and runtime overrides.
"""

import pytest

from questline.core.config.manager import ConfigManager, ConfigWriteError


@pytest.mark.unit
class TestShippedDefaults:
    """Values from config/quest_engine.yaml."""

    def test_grade_thresholds(self):
        assert ConfigManager.get("quest_engine.grade_thresholds.challenging") == 8.5
        assert ConfigManager.get("quest_engine.grade_thresholds.standard") == 7.0
        assert ConfigManager.get("quest_engine.grade_thresholds.low_proficiency") == 0.3

    def test_skill_levels(self):
        assert ConfigManager.get("quest_engine.proficiency.mastery_level") == 2
        assert ConfigManager.get("quest_engine.skill_levels.xp_per_level") == 1000

    def test_exclusion_lists(self):
        codes = ConfigManager.get("quest_line.excluded_subject_codes")
        keywords = ConfigManager.get("quest_line.excluded_name_keywords")

        assert isinstance(codes, list) and codes
        assert isinstance(keywords, list) and keywords

    def test_missing_key_returns_default(self):
        assert ConfigManager.get("quest_engine.does.not.exist", "fallback") == "fallback"


@pytest.mark.unit
class TestOverrides:
    async def test_set_then_get(self):
        await ConfigManager.set("quest_engine.proficiency.mastery_level", 4)

        assert ConfigManager.get("quest_engine.proficiency.mastery_level") == 4

    async def test_reset_restores_yaml(self):
        await ConfigManager.set("quest_engine.proficiency.mastery_level", 4)

        ConfigManager.reset()

        assert ConfigManager.get("quest_engine.proficiency.mastery_level") == 2

    async def test_validator_blocks_write(self):
        def positive(value):
            if value <= 0:
                raise ValueError("must be positive")
            return value

        ConfigManager.register_validator("quest_engine.skill_levels.xp_per_level", positive)

        with pytest.raises(ConfigWriteError):
            await ConfigManager.set("quest_engine.skill_levels.xp_per_level", 0)
        assert ConfigManager.get("quest_engine.skill_levels.xp_per_level") == 1000

    async def test_cannot_descend_into_scalar(self):
        with pytest.raises(ConfigWriteError):
            await ConfigManager.set("quest_engine.proficiency.mastery_level.nested", 1)

    async def test_initialize_with_missing_dir(self, tmp_path):
        await ConfigManager.initialize(config_dir=tmp_path / "absent")

        assert ConfigManager.get("quest_engine.proficiency.mastery_level", 9) == 9
        assert ConfigManager.health_snapshot()["initialized"] is True
