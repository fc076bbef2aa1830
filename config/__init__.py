"""
Configuration module.

Exports:
    settings: Application settings instance
    get_settings: Function to get settings (for dependency injection)
    create_supabase_client: Build a new Supabase client (no shared instance)
    check_connection: Health check function
    get_rule_table: Cached workflow rule table
"""

from config.settings import settings, get_settings, Settings
from config.database import create_supabase_client, check_connection
from config.logging_config import configure_logging
from config.workflow_rules import (
    RULES_VERSION,
    CANCELLED_STATE,
    WorkflowRuleTable,
    get_rule_table,
)

__all__ = [
    # Settings
    "settings",
    "get_settings",
    "Settings",

    # Database
    "create_supabase_client",
    "check_connection",

    # Logging
    "configure_logging",

    # Workflow rules
    "RULES_VERSION",
    "CANCELLED_STATE",
    "WorkflowRuleTable",
    "get_rule_table",
]
