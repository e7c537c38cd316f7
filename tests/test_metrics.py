from waiverdesk.metrics import (
    metrics_payload,
    record_cache_lookup,
    record_http_request,
    record_search,
    reset_metrics_for_tests,
)


def test_metrics_payload_contains_recorded_values():
    reset_metrics_for_tests()

    record_search("suggestions", "success", 0.05)
    record_cache_lookup("hit")
    record_http_request("GET", "suggestions", 200, 0.01)

    payload, content_type = metrics_payload()

    assert content_type.startswith("text/plain")
    body = payload.decode()
    assert "waiverdesk_search_requests_total" in body
    assert 'endpoint="suggestions"' in body
    assert "waiverdesk_suggestion_cache_total" in body
    assert "waiverdesk_http_requests_total" in body


def test_reset_clears_previous_samples():
    record_search("search", "error", 0.2)
    reset_metrics_for_tests()

    body = metrics_payload()[0].decode()
    assert 'status="error"' not in body
