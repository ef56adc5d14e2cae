"""API tests for analytics endpoints"""
import pytest

from habitforge.exceptions import ValidationError


@pytest.fixture
def analytics_url(user_id):
    return f"/api/v1/users/{user_id}/analytics"


@pytest.mark.asyncio
async def test_overview(client, container, analytics_url, user_id):
    container.analytics_service.get_overview.return_value = {"total_habits": 3, "consistency_rate": 40}

    response = await client.get(f"{analytics_url}/overview", params={"days": 7})

    assert response.status_code == 200
    assert response.json() == {"success": True, "data": {"total_habits": 3, "consistency_rate": 40}}
    container.analytics_service.get_overview.assert_awaited_once_with(user_id, days=7)


@pytest.mark.asyncio
async def test_overview_days_out_of_range(client, container, analytics_url):
    container.analytics_service.get_overview.side_effect = ValidationError(
        message="days must be between 1 and 365", field="days", value=400
    )

    response = await client.get(f"{analytics_url}/overview", params={"days": 400})

    assert response.status_code == 400
    assert response.json()["errors"] == [{"field": "days", "message": "days must be between 1 and 365"}]


@pytest.mark.asyncio
async def test_trends_and_weekly_summary(client, container, analytics_url, user_id):
    container.analytics_service.get_trends.return_value = [{"date": "2024-03-15", "completions": 2, "xp_earned": 25}]
    container.analytics_service.get_weekly_summary.return_value = {"days": [], "weekly_stats": {"best_day": None}}

    trends = await client.get(f"{analytics_url}/trends")
    weekly = await client.get(f"{analytics_url}/weekly-summary")

    assert trends.status_code == 200
    assert trends.json()["data"][0]["completions"] == 2
    container.analytics_service.get_trends.assert_awaited_once_with(user_id, days=30)
    assert weekly.json()["data"]["weekly_stats"]["best_day"] is None


@pytest.mark.asyncio
async def test_habit_performance(client, container, analytics_url, user_id):
    container.analytics_service.get_habit_performance.return_value = []

    response = await client.get(f"{analytics_url}/habit-performance", params={"time_range": 90})

    assert response.status_code == 200
    container.analytics_service.get_habit_performance.assert_awaited_once_with(user_id, time_range=90)


@pytest.mark.asyncio
async def test_consistency(client, container, analytics_url, user_id):
    container.analytics_service.get_consistency.return_value = [{"date": "2024-02-03", "value": 1, "level": 1}]

    response = await client.get(f"{analytics_url}/consistency", params={"month": "2024-02"})

    assert response.status_code == 200
    assert response.json()["data"][0]["level"] == 1
    container.analytics_service.get_consistency.assert_awaited_once_with(user_id, month="2024-02")


@pytest.mark.asyncio
async def test_export_csv(client, container, analytics_url, user_id):
    container.analytics_service.export_csv.return_value = "date,habit\r\n2024-03-15,Morning Run\r\n"

    response = await client.get(f"{analytics_url}/export", params={"days": 30})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    disposition = response.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="habitforge-export-')
    assert disposition.endswith('.csv"')
    assert response.text.splitlines()[1] == "2024-03-15,Morning Run"
    container.analytics_service.export_csv.assert_awaited_once_with(user_id, days=30)
