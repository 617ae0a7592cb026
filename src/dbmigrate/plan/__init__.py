"""Planning: Intent collection and ordering into executable steps."""

from __future__ import annotations

from dbmigrate.plan.intent import Intent
from dbmigrate.plan.plan import AlterTable, NewTable, Plan, Stage

__all__ = ["AlterTable", "Intent", "NewTable", "Plan", "Stage"]
