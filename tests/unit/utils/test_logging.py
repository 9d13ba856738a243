from __future__ import annotations

import json
import logging

from occupancy_engine.estimation.single_season import SingleSeasonEstimator
from occupancy_engine.search.enumerator import enumerate_model_specs
from occupancy_engine.search.orchestrator import fit_candidate_models
from occupancy_engine.utils.logging import JSONFormatter, get_logger


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("occupancy_engine.test", logging.INFO, __file__, 1, "fit %s", ("done",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context_fields():
    payload = json.loads(JSONFormatter().format(_record(model="p(a) psi(b)", fold=3, ignored="x")))

    assert payload["message"] == "fit done"
    assert payload["level"] == "INFO"
    assert payload["model"] == "p(a) psi(b)"
    assert payload["fold"] == 3
    assert "ignored" not in payload
    assert payload["timestamp"].endswith("Z")


def test_get_logger_attaches_component(caplog):
    logger = get_logger("occupancy_engine.test.component", component="unit")

    with caplog.at_level(logging.INFO):
        logger.info("hello")

    assert caplog.records[-1].component == "unit"


def test_fit_batch_summary_keeps_counts(sites, caplog):
    specs = list(enumerate_model_specs(["a", "b"], 9))

    with caplog.at_level(logging.INFO):
        fit_candidate_models(specs, sites, SingleSeasonEstimator(), max_workers=1, per_fit_seconds=30.0)

    formatter = JSONFormatter()
    payloads = {record.getMessage(): json.loads(formatter.format(record)) for record in caplog.records}
    summary = payloads["Model fitting complete"]
    assert summary["n_models"] == 9
    assert summary["converged"] + summary["failed"] == 9
    start = payloads["Starting model fits"]
    assert start["workers"] == 1
    assert start["budget_seconds"] > 0


def test_selection_and_evaluation_fields_are_emitted():
    payload = json.loads(
        JSONFormatter().format(_record(confidence_set=3, top="p(a) psi(b)", mse=0.1, p_value=0.4, c_hat=1.2))
    )

    assert payload["confidence_set"] == 3
    assert payload["top"] == "p(a) psi(b)"
    assert payload["mse"] == 0.1
    assert payload["p_value"] == 0.4
    assert payload["c_hat"] == 1.2
