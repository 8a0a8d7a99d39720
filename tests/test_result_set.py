import pytest

from labverify.commons.errors import NotFoundError
from labverify.domain.models import (
    Classification,
    ParameterDefinition,
    Patient,
    ResultEntry,
    TestOrder,
)
from labverify.services.result_set import ResultSet

PARAMS = {
    "GLU": ParameterDefinition("GLU", "Glucosa", "mg/dL", "70-110", "", 40.0, 450.0, 1),
    "HGB": ParameterDefinition("HGB", "Hemoglobina", "g/dL", "13.5-17.5", "12.0-16.0", 7.0, 20.0, 2),
    "CHOL": ParameterDefinition("CHOL", "Colesterol", "mg/dL", "< 200", "", None, None, 3),
}


def make_order(sex="Female", ids=("GLU", "HGB", "CHOL"), results=None):
    return TestOrder(
        id="o1",
        order_number="LAB2508150001",
        test_code="PANEL",
        patient=Patient(id="p1", name="Ana", sex=sex),
        parameter_ids=list(ids),
        results=results or {},
    )


def test_missing_entries_are_created_unset():
    rs = ResultSet(make_order(), PARAMS)
    assert [e.parameter_id for e in rs.entries()] == ["GLU", "HGB", "CHOL"]
    assert all(e.value is None for e in rs.entries())
    assert rs.summary().as_dict() == {"normal": 0, "abnormal": 0, "critical": 0, "unset": 3}


def test_set_value_reclassifies_on_every_edit():
    rs = ResultSet(make_order(), PARAMS)
    assert rs.set_value("GLU", "95").classification is Classification.NORMAL
    assert rs.set_value("GLU", "65").classification is Classification.ABNORMAL
    assert rs.set_value("GLU", "30").classification is Classification.CRITICAL
    assert rs.set_value("GLU", "").classification is Classification.UNCLASSIFIED
    assert rs.order.results["GLU"].value is None


def test_set_value_uses_patient_sex():
    female = ResultSet(make_order(sex="Female"), PARAMS)
    male = ResultSet(make_order(sex="Male"), PARAMS)
    assert female.set_value("HGB", "13").classification is Classification.NORMAL
    assert male.set_value("HGB", "13").classification is Classification.ABNORMAL


def test_remarks_are_kept_unless_given():
    rs = ResultSet(make_order(), PARAMS)
    rs.set_value("GLU", "95", "hemolizada")
    rs.set_value("GLU", "96")
    assert rs.order.results["GLU"].remarks == "hemolizada"
    rs.set_value("GLU", "96", "")
    assert rs.order.results["GLU"].remarks == ""


def test_stored_classification_is_recomputed_on_load():
    # una clasificación persistida (o manipulada) no se respeta
    tampered = ResultEntry("GLU", value="30", classification=Classification.NORMAL)
    rs = ResultSet(make_order(results={"GLU": tampered}), PARAMS)
    assert rs.order.results["GLU"].classification is Classification.CRITICAL


def test_is_complete_flips_with_one_unset_parameter():
    rs = ResultSet(make_order(), PARAMS)
    rs.set_value("GLU", "95")
    rs.set_value("HGB", "14")
    assert not rs.is_complete()
    assert rs.missing_parameters() == ["CHOL"]
    rs.set_value("CHOL", "180")
    assert rs.is_complete()
    rs.set_value("CHOL", "  ")
    assert not rs.is_complete()


def test_non_numeric_value_counts_as_filled():
    rs = ResultSet(make_order(ids=("CHOL",)), PARAMS)
    rs.set_value("CHOL", "ver nota")
    assert rs.is_complete()
    assert rs.summary().normal == 1


def test_summary_counts():
    rs = ResultSet(make_order(), PARAMS)
    rs.set_value("GLU", "30")
    rs.set_value("HGB", "11")
    assert rs.summary().as_dict() == {"normal": 0, "abnormal": 1, "critical": 1, "unset": 1}
    assert rs.has_any_value()


def test_unknown_parameter_raises_not_found():
    rs = ResultSet(make_order(), PARAMS)
    with pytest.raises(NotFoundError):
        rs.set_value("XYZ", "1")


def test_order_with_parameter_missing_in_catalog():
    with pytest.raises(NotFoundError):
        ResultSet(make_order(ids=("GLU", "NOPE")), PARAMS)
