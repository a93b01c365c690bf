from sqlalchemy import func, select

from lead_crm_svc.models import OptionSettings
from lead_crm_svc.models.options import DEFAULT_LOCATIONS
from lead_crm_svc.schemas.options import LeadStage, OptionsUpdate
from lead_crm_svc.services.options_service import ensure_settings, get_options, update_options


def test_settings_created_once_with_defaults(db_session):
    first = ensure_settings(db_session)
    second = ensure_settings(db_session)
    assert first.id == second.id
    assert db_session.execute(select(func.count(OptionSettings.id))).scalar_one() == 1

    options = get_options(db_session)
    assert options.locations == DEFAULT_LOCATIONS
    assert options.statuses == ["hot", "warm", "cold"]
    hot = next(stage for stage in options.lead_stages if stage.label == "Hot")
    assert hot.sub_stages == ["Confirmed Admission"]


def test_update_trims_and_drops_blanks(db_session):
    result = update_options(
        db_session,
        OptionsUpdate(
            courses=["  Python ", "", "   ", "Java"],
            lead_stages=[LeadStage(label=" Hot ", sub_stages=[" Paid ", ""]), LeadStage(label="  ", sub_stages=["x"])],
        ),
    )
    assert result.courses == ["Python", "Java"]
    assert [s.label for s in result.lead_stages] == ["Hot"]
    assert result.lead_stages[0].sub_stages == ["Paid"]
    # untouched lists keep their values
    assert result.locations == DEFAULT_LOCATIONS

    stored = ensure_settings(db_session)
    assert stored.lead_stages == [{"label": "Hot", "subStages": ["Paid"]}]
