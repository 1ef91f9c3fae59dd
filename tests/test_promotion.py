"""Tests for CRM lead promotion and action item conversion."""

import pytest

from lead_intel.crm.promotion import DEFAULT_STAGES, LeadPromotionService, split_name
from lead_intel.crm.tasks import ActionItemNotFound, convert_action_item
from lead_intel.models import ActionItem, AnalysisResult, ExtractedLead, LeadSignals


def _add_lead(repo, tier, score, name="Jane Doe", user_id="u1"):
    job_id = repo.create_job(user_id, "agencies needing automation", "h")
    group_id = repo.get_or_create_lead_group(job_id)
    [lead_id] = repo.add_leads(group_id, [(
        ExtractedLead(name=name, company="Acme", email="jane@acme.io"), LeadSignals(),
    )])
    repo.set_lead_score(lead_id, score, tier)
    return group_id, lead_id


class TestSplitName:
    def test_first_and_rest(self):
        assert split_name("Mary Ann van Dyke") == ("Mary", "Ann van Dyke")

    def test_single_word(self):
        assert split_name("Cher") == ("Cher", "Contact")

    def test_missing(self):
        assert split_name("") == ("Unknown", "Contact")
        assert split_name(None) == ("Unknown", "Contact")


class TestPromote:
    def test_hot_lead_is_qualified_in_first_stage(self, repo):
        _, lead_id = _add_lead(repo, "HOT", 85)
        service = LeadPromotionService(repo)

        result = service.promote(lead_id, "u1")

        assert result.promoted is True
        crm = repo.get_crm_lead(result.crm_id)
        assert crm.status == "QUALIFIED"
        assert crm.score == 85
        assert (crm.first_name, crm.last_name) == ("Jane", "Doe")
        pipeline = repo.get_default_pipeline("u1")
        assert [s.name for s in pipeline.stages] == [s["name"] for s in DEFAULT_STAGES]
        assert crm.stage_id == pipeline.stages[0].id
        assert pipeline.stages[0].name == "Discovery"

    def test_warm_lead_is_new(self, repo):
        _, lead_id = _add_lead(repo, "WARM", 65)
        result = LeadPromotionService(repo).promote(lead_id, "u1")
        assert repo.get_crm_lead(result.crm_id).status == "NEW"

    def test_promoting_twice_creates_one_crm_lead(self, repo):
        _, lead_id = _add_lead(repo, "HOT", 90)
        service = LeadPromotionService(repo)

        first = service.promote(lead_id, "u1")
        second = service.promote(lead_id, "u1")

        assert second.promoted is False
        assert second.crm_id == first.crm_id
        assert repo.count_crm_leads("u1") == 1

    @pytest.mark.parametrize("tier,score", [("COLD", 45), ("DISCARD", 10), ("UNSCORED", None)])
    def test_other_tiers_are_not_promoted(self, repo, tier, score):
        _, lead_id = _add_lead(repo, tier, score)
        result = LeadPromotionService(repo).promote(lead_id, "u1")
        assert result.promoted is False
        assert repo.count_crm_leads("u1") == 0

    def test_default_pipeline_created_once(self, repo):
        service = LeadPromotionService(repo)
        _, a = _add_lead(repo, "HOT", 90)
        _, b = _add_lead(repo, "WARM", 70)

        service.promote(a, "u1")
        service.promote(b, "u1")

        assert repo.count_pipelines("u1") == 1

    def test_promote_batch_summary(self, repo):
        job_id = repo.create_job("u1", "agencies needing automation", "h")
        group_id = repo.get_or_create_lead_group(job_id)
        ids = repo.add_leads(group_id, [
            (ExtractedLead(name=f"Lead {i}"), LeadSignals()) for i in range(4)
        ])
        for lead_id, (score, tier) in zip(ids, [(90, "HOT"), (70, "WARM"), (65, "WARM"), (20, "DISCARD")]):
            repo.set_lead_score(lead_id, score, tier)
        service = LeadPromotionService(repo)

        summary = service.promote_batch(group_id, "u1")
        again = service.promote_batch(group_id, "u1")

        assert (summary.promoted, summary.hot, summary.warm) == (3, 1, 2)
        assert again.promoted == 0
        assert repo.count_crm_leads("u1") == 3


class TestConvertActionItem:
    def _job_with_items(self, repo, *items):
        job_id = repo.create_job("u1", "best crm tools for agencies", "h")
        repo.save_analysis(job_id, AnalysisResult(summary="s", action_items=list(items)))
        return job_id, [item.id for item in repo.get_action_items(job_id)]

    def test_creates_task_once(self, repo):
        _, [item_id] = self._job_with_items(
            repo, ActionItem(description="Book demos with the top three vendors", priority="HIGH"),
        )

        first = convert_action_item(repo, item_id)
        second = convert_action_item(repo, item_id)

        assert first.created is True
        assert second.created is False
        assert second.task_id == first.task_id
        assert repo.count_tasks("u1") == 1
        task = repo.get_task(first.task_id)
        assert task["title"] == "Book demos with the top three vendors"
        assert task["description"] == "Generated from research: best crm tools for agencies"
        assert task["priority"] == "high"
        assert task["status"] == "not_started"

    def test_long_description_is_truncated_for_title(self, repo):
        _, [item_id] = self._job_with_items(repo, ActionItem(description="x" * 300, priority="LOW"))
        task = repo.get_task(convert_action_item(repo, item_id).task_id)
        assert len(task["title"]) == 200
        assert task["priority"] == "low"

    def test_converted_item_is_marked(self, repo):
        job_id, [item_id] = self._job_with_items(repo, ActionItem(description="Call Acme"))
        result = convert_action_item(repo, item_id)
        item = repo.get_action_item(item_id)
        assert item.task_id == result.task_id
        assert item.converted_at is not None

    def test_unknown_item(self, repo):
        with pytest.raises(ActionItemNotFound):
            convert_action_item(repo, 404)
