"""
Unit tests -- funnel rules loader.
"""
import pytest

from src.core.verticals import Vertical
from src.funnel.rules import FunnelRules, FunnelRulesError, STAGE_KEYS, load_funnel_rules


@pytest.fixture(scope="module")
def rules():
    return load_funnel_rules()


def test_loads_without_error(rules):
    assert isinstance(rules, FunnelRules)
    assert rules.version == 1


def test_exclusions(rules):
    assert rules.slug_exclusions == ("569657C6", "5EB1A14A", "075E54DF")
    assert rules.source_exclusion == "DnB"
    assert rules.test_name_patterns.not_like == ("%test%", "test%")
    assert rules.test_name_patterns.not_equal == ("test",)


def test_every_vertical_routed(rules):
    for vertical in Vertical:
        assert rules.tables_for(vertical).opportunities_table


def test_vertical_routing(rules):
    assert rules.tables_for(Vertical.ISPRAVA).enquiries_vertical == "development"
    chapter = rules.tables_for(Vertical.THE_CHAPTER)
    assert chapter.opportunities_table == "chapter_opportunities"
    assert chapter.exclude_test_records
    assert not rules.tables_for(Vertical.SOLENE).has_data


def test_stages_in_order(rules):
    assert [rules.stage(k).sort_order for k in STAGE_KEYS] == [1, 2, 3, 4]
    assert rules.stage("lead").mandatory_conditions == ()
    assert rules.stage("sale").timestamp_column == "maal_laao_at"


def test_chapter_rules(rules):
    assert "Site Visit" in rules.chapter.viewing_mediums
    assert rules.chapter.leadable_type == "Chapter::Opportunity"


def test_cached(rules):
    assert load_funnel_rules() is rules


def test_missing_file(tmp_path):
    with pytest.raises(FunnelRulesError, match="not found"):
        load_funnel_rules(str(tmp_path / "nope.yml"))


def test_invalid_yaml(tmp_path):
    path = tmp_path / "bad.yml"
    path.write_text("verticals: [unclosed", encoding="utf-8")
    with pytest.raises(FunnelRulesError, match="Invalid"):
        load_funnel_rules(str(path))


def test_missing_vertical(tmp_path, rules):
    path = tmp_path / "partial.yml"
    path.write_text(
        """
source_exclusion: DnB
verticals:
  isprava:
    opportunities_table: development_opportunities
    enquiries_vertical: development
stages: {}
chapter:
  viewing_mediums: [Viewing]
  meeting_medium: Meeting
  leadable_type: "Chapter::Opportunity"
  feedable_type: Task
""",
        encoding="utf-8",
    )
    with pytest.raises(FunnelRulesError, match="missing verticals"):
        load_funnel_rules(str(path))
