"""Unit tests for tool and query categorization."""

from agentbridge.tools.categories import (
    FALLBACK_PRIORITY,
    categorize_tool,
    category_priority,
    detect_query_categories,
)


class TestCategorizeTool:
    def test_known_server_categories(self):
        categories = categorize_tool("do_thing", server_id="rootly")

        assert categories[:3] == ["incident", "oncall", "runbook"]

    def test_explicit_server_categories_replace_table(self):
        categories = categorize_tool("do_thing", server_id="rootly", server_categories=["wiki"])

        assert "incident" not in categories
        assert categories[0] == "wiki"

    def test_name_and_description_patterns(self):
        categories = categorize_tool("get_pod_logs", "Fetch container logs for a pod")

        assert "logs" in categories
        assert "kubernetes" in categories
        assert "search" in categories

    def test_unmatched_tool_is_utility(self):
        assert categorize_tool("zzz") == ["utility"]

    def test_order_is_stable(self):
        assert categorize_tool("search_logs", "x") == categorize_tool("search_logs", "x")


class TestDetectQueryCategories:
    def test_log_query(self):
        categories = detect_query_categories("Any exceptions in the checkout logs?")

        assert "logs" in categories

    def test_short_keywords_need_word_boundaries(self):
        assert "pr" not in detect_query_categories("please print the report")
        assert "pr" in detect_query_categories("review my PR")

    def test_multiple_categories(self):
        categories = detect_query_categories("Was there an outage after the last deployment to the k8s cluster?")

        assert {"incident", "deployment", "kubernetes"} <= set(categories)

    def test_nothing_detected(self):
        assert detect_query_categories("hello there") == []


class TestCategoryPriority:
    def test_falls_back_when_nothing_detected(self):
        assert category_priority("hello there") == [c.value for c in FALLBACK_PRIORITY]

    def test_detected_categories_used(self):
        assert "jira" in category_priority("update the jira epic")
