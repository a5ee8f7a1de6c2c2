import pytest

from table_fetch.common.exceptions import ConfigurationError, TemplateResolutionError
from table_fetch.common.templating import is_templated, resolve_template


def test_is_templated():
    assert is_templated("${tableName}")
    assert is_templated("SALES.${ table }")
    assert not is_templated("ORDERS")
    assert not is_templated("")
    assert not is_templated(None)


def test_attributes_take_precedence_over_variables():
    assert (
        resolve_template("${t}", {"t": "FROM_ATTRIBUTE"}, {"t": "FROM_VARIABLE"})
        == "FROM_ATTRIBUTE"
    )


def test_falls_back_to_variables():
    assert resolve_template("${schema}.${t}", {"t": "ORDERS"}, {"schema": "S"}) == "S.ORDERS"


def test_plain_values_pass_through():
    assert resolve_template("ORDERS") == "ORDERS"


def test_unresolvable_expression():
    with pytest.raises(TemplateResolutionError) as exc_info:
        resolve_template("${tableName}", {"other": "x"})
    assert exc_info.value.name == "tableName"
    assert isinstance(exc_info.value, ConfigurationError)
