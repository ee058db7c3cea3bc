from lifecycle.notices import build_cycle_report_embed, build_purge_result_embed, build_reminder_embed
from lifecycle.purge import PurgeResult
from lifecycle.scheduler import CycleReport


def field_values(embed):
    return {field.name: field.value for field in embed.fields}


def test_reminder_mentions_both_thresholds():
    embed = build_reminder_embed(7, 30)
    assert "7 days" in embed.description
    assert "30 days" in embed.description


def test_skipped_cycle_has_no_counters():
    embed = build_cycle_report_embed(CycleReport(skipped_fire=True))
    assert "disconnected" in embed.description
    assert embed.fields == []


def test_cycle_report_lists_counters():
    report = CycleReport(forums_scanned=2, threads_checked=9, reminded=3, closed=1, skipped=2)
    values = field_values(build_cycle_report_embed(report))
    assert values["Reminders Sent"] == "3"
    assert values["Threads Closed"] == "1"
    assert "Errors" not in values


def test_purge_result_describes_scope():
    result = PurgeResult(deleted_count=4, channels_scanned=1)
    embed = build_purge_result_embed(result, "<@5>", 3, "<#9>", 10)
    values = field_values(embed)
    assert values["Messages Deleted"] == "4"
    assert values["Channel"] == "<#9>"
    assert values["Time Range"] == "Last 3 day(s)"
    assert values["Limit"] == "10 messages"


def test_failed_purge_shows_error():
    embed = build_purge_result_embed(PurgeResult(error="Container 1: guild not found"), "<@5>", None, None, None)
    assert embed.title == "Purge Failed"
    assert "guild not found" in embed.description
