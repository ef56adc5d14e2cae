"""
Database queries - one module per aggregate, re-exported here.

Callers use the 'from habitforge.db import queries' pattern, so tests can
patch 'habitforge.db.queries.<function>' in one place.

Module organization:
- users.py: User accounts, settings, XP/level/token progress
- habits.py: Habits and their cached statistics
- completions.py: Completion records
- xp.py: XP ledger
- community.py: Circles, members, messages, events, challenges
- analytics.py: Aggregations for dashboards and export

Functions whose first argument is `conn` run inside the caller's
transaction; the rest acquire a pooled connection and commit themselves.
"""

# User operations
from habitforge.db.queries.users import (
    create_user,
    get_user,
    lock_user,
    update_user_settings,
    update_user_status,
    update_user_progress,
)

# Habit operations
from habitforge.db.queries.habits import (
    list_habits,
    get_habit,
    lock_habit,
    lock_user_habits,
    create_habit,
    update_habit,
    update_habit_stats,
    delete_habit,
)

# Completion operations
from habitforge.db.queries.completions import (
    completion_exists,
    has_any_completion,
    insert_completion,
    set_completion_xp,
    get_completion_dates,
    get_habit_completions,
    get_recent_completions_by_habit,
    get_completions_page,
    get_period_stats,
    get_completed_habit_ids_on,
)

# XP ledger operations
from habitforge.db.queries.xp import (
    add_xp_transaction,
    get_xp_transactions,
)

# Community operations
from habitforge.db.queries.community import (
    invite_code_exists,
    insert_circle,
    lock_circle,
    load_circle,
    get_circle,
    list_circles,
    delete_circle,
    add_member,
    remove_member,
    set_leaderboard_opt_out,
    add_community_points,
    get_leaderboard,
    insert_message,
    count_messages_since,
    insert_event,
    insert_challenge,
    add_challenge_participant,
    update_challenge_participant,
)

# Analytics operations
from habitforge.db.queries.analytics import (
    get_habit_summary,
    get_daily_completion_counts,
    get_habit_performance,
    get_export_rows,
)

__all__ = [
    # Users
    "create_user",
    "get_user",
    "lock_user",
    "update_user_settings",
    "update_user_status",
    "update_user_progress",

    # Habits
    "list_habits",
    "get_habit",
    "lock_habit",
    "lock_user_habits",
    "create_habit",
    "update_habit",
    "update_habit_stats",
    "delete_habit",

    # Completions
    "completion_exists",
    "has_any_completion",
    "insert_completion",
    "set_completion_xp",
    "get_completion_dates",
    "get_habit_completions",
    "get_recent_completions_by_habit",
    "get_completions_page",
    "get_period_stats",
    "get_completed_habit_ids_on",

    # XP ledger
    "add_xp_transaction",
    "get_xp_transactions",

    # Community
    "invite_code_exists",
    "insert_circle",
    "lock_circle",
    "load_circle",
    "get_circle",
    "list_circles",
    "delete_circle",
    "add_member",
    "remove_member",
    "set_leaderboard_opt_out",
    "add_community_points",
    "get_leaderboard",
    "insert_message",
    "count_messages_since",
    "insert_event",
    "insert_challenge",
    "add_challenge_participant",
    "update_challenge_participant",

    # Analytics
    "get_habit_summary",
    "get_daily_completion_counts",
    "get_habit_performance",
    "get_export_rows",
]
