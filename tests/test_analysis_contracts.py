from analysis_contracts import lint_chart_payload


def _valid_chart_payload():
    return {
        "action": "show_chart",
        "chart_type": "bar",
        "title": "Revenue by quarter",
        "message": "Revenue grew every quarter.",
        "data": [
            {"label": "Q1", "value": 120.0},
            {"label": "Q2", "value": 135.5},
            {"label": "Q3", "value": 150},
        ],
        "xKey": "label",
        "yKey": "value",
        "source": "internal",
    }


def test_lint_chart_payload_accepts_valid_payload():
    assert lint_chart_payload(_valid_chart_payload()) == []


def test_lint_chart_payload_accepts_snake_case_key_aliases():
    payload = _valid_chart_payload()
    payload["x_key"] = payload.pop("xKey")
    payload["y_key"] = payload.pop("yKey")
    assert lint_chart_payload(payload) == []


def test_lint_chart_payload_flags_placeholder_text():
    payload = _valid_chart_payload()
    payload["title"] = "Chart title"
    errors = lint_chart_payload(payload)
    assert any("placeholder" in err for err in errors)


def test_lint_chart_payload_flags_snake_case_leak():
    payload = _valid_chart_payload()
    payload["message"] = "total_revenue spiked in Q3"
    errors = lint_chart_payload(payload)
    assert any("snake_case" in err for err in errors)


def test_snake_case_in_data_labels_is_not_human_text():
    payload = _valid_chart_payload()
    payload["data"][0]["label"] = "q1_total"
    assert lint_chart_payload(payload) == []


def test_lint_chart_payload_flags_non_numeric_values():
    payload = _valid_chart_payload()
    payload["data"][1]["value"] = "135"
    payload["data"][2]["value"] = True
    errors = lint_chart_payload(payload)
    assert len([err for err in errors if "must be numeric" in err]) == 2


def test_lint_chart_payload_flags_missing_keys_and_unknown_type():
    payload = _valid_chart_payload()
    del payload["source"]
    payload["chart_type"] = "radar"
    errors = lint_chart_payload(payload)
    assert "Missing top-level key: source" in errors
    assert any(err.startswith("chart_type must be one of") for err in errors)


def test_lint_chart_payload_flags_missing_series_values():
    payload = _valid_chart_payload()
    payload["yKey"] = ["value", "target"]
    errors = lint_chart_payload(payload)
    assert "data[0].target is missing." in errors


def test_text_only_payload_skips_chart_checks():
    assert lint_chart_payload({"action": "text_only", "message": "Hello"}) == []


def test_unknown_action_and_non_dict_payload():
    assert any("action must be one of" in err for err in lint_chart_payload({"action": "dance"}))
    assert lint_chart_payload(["not", "a", "dict"]) == ["Chart payload must be a dictionary."]
