"""MCP tools for manual health logging.

These tools capture what no device records: symptoms, caffeine, medication,
supplements, exercise, weight, Bristol stool type, meals and cycle days.
Times are ISO 8601; a time without an offset is read in the user's profile
timezone. Entries are editable and deletable by ID.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from healthhub.core.storage.models import (
    CycleEntry,
    FoodEntry,
    HealthMetric,
    ManualLog,
    MedicationLog,
    Profile,
)
from healthhub.core.storage.timestamps import parse_timestamp, to_utc_iso, utc_now
from healthhub.domains.health.connectors.ingredients import tag_ingredients
from healthhub.domains.health.domain_logic.cycle import PHASES
from healthhub.domains.health.domain_logic.timezones import resolve_timezone

if TYPE_CHECKING:
    from healthhub.core.audit.logger import AuditLogger
    from healthhub.core.storage.repository import HealthRepository

logger = logging.getLogger(__name__)

CYCLE_FLOWS = ("light", "normal", "heavy")


def register_logging_tools(
    mcp: FastMCP,
    repository: HealthRepository,
    audit_logger: AuditLogger | None = None,
    *,
    default_timezone: str = "UTC",
    clock: Callable[[], datetime] = utc_now,
) -> None:
    """Register manual logging and profile tools on the MCP server."""

    def _when(user_id: str, logged_at: str) -> datetime:
        if not logged_at:
            return clock()
        profile = repository.get_profile(user_id)
        tz = resolve_timezone(profile.timezone if profile else None, default_timezone)
        return parse_timestamp(logged_at, tz)

    def _save_log(
        user_id: str,
        log_type: str,
        value: str,
        logged_at: str,
        *,
        severity: int | None = None,
        notes: str = "",
        metadata: dict | None = None,
    ) -> str:
        if severity is not None and not 1 <= severity <= 10:
            return json.dumps({"status": "error", "message": "severity must be between 1 and 10"})
        try:
            when = _when(user_id, logged_at)
        except ValueError:
            return json.dumps({"status": "error", "message": f"Invalid timestamp: {logged_at!r}"})

        log_id = repository.add_manual_log(ManualLog(
            user_id=user_id,
            log_type=log_type,
            value=value,
            logged_at=to_utc_iso(when),
            severity=severity,
            notes=notes or None,
            metadata=metadata or {},
        ))
        logger.info("Manual %s log saved for %s (%s)", log_type, user_id, log_id)
        if audit_logger is not None:
            audit_logger.log_tool_call(f"log_{log_type}", {"log_id": log_id}, user_id=user_id)
        return json.dumps({
            "status": "saved",
            "log_id": log_id,
            "log_type": log_type,
            "logged_at": to_utc_iso(when),
        })

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    @mcp.tool
    async def set_profile(
        ctx: Context,
        user_id: str,
        timezone: str = "",
        location_city: str = "",
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> str:
        """Set the user's timezone and location. Omitted fields are left unchanged.

        Args:
            user_id: The user to update.
            timezone: IANA timezone name (e.g., 'Europe/Berlin').
            location_city: City name shown with weather data.
            latitude: Latitude used for weather sync.
            longitude: Longitude used for weather sync.
        """
        if timezone:
            resolved = resolve_timezone(timezone, "")
            if str(resolved) != timezone:
                return json.dumps({"status": "error", "message": f"Unknown timezone: {timezone}"})
        if (latitude is None) != (longitude is None):
            return json.dumps({
                "status": "error",
                "message": "latitude and longitude must be given together",
            })

        repository.upsert_profile(Profile(
            user_id=user_id,
            timezone=timezone or None,
            location_city=location_city or None,
            latitude=latitude,
            longitude=longitude,
        ))
        profile = repository.get_profile(user_id)
        return json.dumps({
            "status": "saved",
            "user_id": user_id,
            "timezone": profile.timezone if profile else None,
            "location_city": profile.location_city if profile else None,
            "has_location": bool(profile and profile.latitude is not None),
        })

    # ------------------------------------------------------------------
    # Manual logs
    # ------------------------------------------------------------------

    @mcp.tool
    async def log_symptom(
        ctx: Context,
        user_id: str,
        symptom: str,
        severity: int | None = None,
        logged_at: str = "",
        notes: str = "",
    ) -> str:
        """Log a symptom such as 'headache', 'bloating' or 'fatigue'.

        Args:
            user_id: The user logging the symptom.
            symptom: Symptom name.
            severity: Optional severity from 1 (mild) to 10 (severe).
            logged_at: When it occurred (ISO 8601). Defaults to now.
            notes: Optional free-text notes.
        """
        if not symptom.strip():
            return json.dumps({"status": "error", "message": "symptom is required"})
        return _save_log(
            user_id, "symptom", symptom.strip().lower(), logged_at,
            severity=severity, notes=notes,
        )

    @mcp.tool
    async def log_caffeine(
        ctx: Context,
        user_id: str,
        amount_mg: float,
        drink: str = "",
        logged_at: str = "",
    ) -> str:
        """Log a caffeinated drink.

        Args:
            user_id: The user logging caffeine.
            amount_mg: Caffeine in milligrams (an espresso is about 65 mg).
            drink: Optional drink name.
            logged_at: When it was consumed (ISO 8601). Defaults to now.
        """
        if amount_mg <= 0:
            return json.dumps({"status": "error", "message": "amount_mg must be positive"})
        return _save_log(
            user_id, "caffeine", f"{amount_mg:g}", logged_at,
            metadata={"drink": drink} if drink else None,
        )

    @mcp.tool
    async def log_supplement(
        ctx: Context,
        user_id: str,
        name: str,
        dose: str = "",
        logged_at: str = "",
    ) -> str:
        """Log a supplement (e.g., 'magnesium', '400 mg').

        Args:
            user_id: The user logging the supplement.
            name: Supplement name.
            dose: Optional dose as written on the label.
            logged_at: When it was taken (ISO 8601). Defaults to now.
        """
        return _save_log(
            user_id, "supplement", json.dumps({"name": name, "dose": dose}), logged_at
        )

    @mcp.tool
    async def log_exercise(
        ctx: Context,
        user_id: str,
        activity: str,
        duration_minutes: int,
        intensity: str = "",
        logged_at: str = "",
    ) -> str:
        """Log an exercise session.

        Args:
            user_id: The user logging the session.
            activity: Activity name (e.g., 'running', 'yoga').
            duration_minutes: Session length in minutes.
            intensity: Optional 'low', 'moderate' or 'high'.
            logged_at: When the session started (ISO 8601). Defaults to now.
        """
        if duration_minutes <= 0:
            return json.dumps({"status": "error", "message": "duration_minutes must be positive"})
        payload = {"activity": activity, "duration_minutes": duration_minutes}
        if intensity:
            payload["intensity"] = intensity
        return _save_log(user_id, "exercise", json.dumps(payload), logged_at)

    @mcp.tool
    async def log_weight(
        ctx: Context,
        user_id: str,
        weight_kg: float,
        logged_at: str = "",
    ) -> str:
        """Log body weight. Also recorded as a manual ``weight`` metric.

        Args:
            user_id: The user logging weight.
            weight_kg: Weight in kilograms.
            logged_at: When it was measured (ISO 8601). Defaults to now.
        """
        if weight_kg <= 0:
            return json.dumps({"status": "error", "message": "weight_kg must be positive"})
        result = json.loads(_save_log(user_id, "weight", f"{weight_kg:g}", logged_at))
        if result["status"] == "saved":
            repository.insert_metrics([HealthMetric(
                user_id=user_id,
                metric_type="weight",
                value=round(weight_kg, 2),
                unit="kg",
                source="manual",
                recorded_at=result["logged_at"],
                metadata={"log_id": result["log_id"]},
            )])
        return json.dumps(result)

    @mcp.tool
    async def log_bristol_stool(
        ctx: Context,
        user_id: str,
        stool_type: int,
        logged_at: str = "",
        notes: str = "",
    ) -> str:
        """Log a Bristol stool scale reading.

        Args:
            user_id: The user logging the reading.
            stool_type: Bristol type from 1 (hard) to 7 (liquid).
            logged_at: When it occurred (ISO 8601). Defaults to now.
            notes: Optional free-text notes.
        """
        if not 1 <= stool_type <= 7:
            return json.dumps({"status": "error", "message": "stool_type must be between 1 and 7"})
        return _save_log(user_id, "bristol_stool", str(stool_type), logged_at, notes=notes)

    @mcp.tool
    async def log_medication(
        ctx: Context,
        user_id: str,
        took_medication: bool,
        logged_at: str = "",
        notes: str = "",
    ) -> str:
        """Log whether today's medication was taken or missed.

        Args:
            user_id: The user logging adherence.
            took_medication: True if taken, False if missed.
            logged_at: When it was taken or due (ISO 8601). Defaults to now.
            notes: Optional notes (e.g., the medication name).
        """
        try:
            when = _when(user_id, logged_at)
        except ValueError:
            return json.dumps({"status": "error", "message": f"Invalid timestamp: {logged_at!r}"})
        log_id = repository.add_medication_log(MedicationLog(
            user_id=user_id,
            logged_at=to_utc_iso(when),
            took_medication=took_medication,
            notes=notes or None,
        ))
        if audit_logger is not None:
            audit_logger.log_tool_call("log_medication", {"log_id": log_id}, user_id=user_id)
        return json.dumps({
            "status": "saved",
            "log_id": log_id,
            "took_medication": took_medication,
            "logged_at": to_utc_iso(when),
        })

    @mcp.tool
    async def log_food(
        ctx: Context,
        user_id: str,
        name: str,
        brand: str = "",
        meal_type: str = "",
        calories: float | None = None,
        protein: float | None = None,
        carbs: float | None = None,
        fat: float | None = None,
        logged_at: str = "",
    ) -> str:
        """Log a meal or snack. Dairy, gluten and caffeine are tagged from the name.

        Args:
            user_id: The user logging the food.
            name: Food name (e.g., 'Oat Milk Latte').
            brand: Optional brand name.
            meal_type: Optional 'breakfast', 'lunch', 'dinner' or 'snack'.
            calories: Optional calories (kcal).
            protein: Optional protein (g).
            carbs: Optional carbohydrates (g).
            fat: Optional fat (g).
            logged_at: When it was eaten (ISO 8601). Defaults to now.
        """
        try:
            when = _when(user_id, logged_at)
        except ValueError:
            return json.dumps({"status": "error", "message": f"Invalid timestamp: {logged_at!r}"})
        flags = tag_ingredients(name, brand or None)
        written = repository.upsert_food_entries([FoodEntry(
            user_id=user_id,
            name=name,
            brand=brand or None,
            meal_type=meal_type or None,
            calories=calories,
            protein=protein,
            carbs=carbs,
            fat=fat,
            logged_at=to_utc_iso(when),
            source="manual",
            contains_dairy=flags.contains_dairy,
            contains_gluten=flags.contains_gluten,
            contains_caffeine=flags.contains_caffeine,
        )])
        return json.dumps({
            "status": "saved" if written else "duplicate",
            "name": name,
            "contains_dairy": flags.contains_dairy,
            "contains_gluten": flags.contains_gluten,
            "contains_caffeine": flags.contains_caffeine,
        })

    @mcp.tool
    async def log_cycle(
        ctx: Context,
        user_id: str,
        date: str,
        phase: str = "menstruation",
        flow: str = "",
        notes: str = "",
    ) -> str:
        """Log a menstrual cycle day. Stored encrypted.

        Args:
            user_id: The user logging the day.
            date: Calendar date (YYYY-MM-DD).
            phase: 'menstruation', 'follicular', 'ovulation' or 'luteal'.
            flow: Optional 'light', 'normal' or 'heavy'.
            notes: Optional free-text notes.
        """
        try:
            datetime.strptime(date, "%Y-%m-%d")
        except ValueError:
            return json.dumps({"status": "error", "message": f"Invalid date: {date!r}"})
        if phase not in PHASES:
            return json.dumps({
                "status": "error",
                "message": f"phase must be one of: {', '.join(PHASES)}",
            })
        if flow and flow not in CYCLE_FLOWS:
            return json.dumps({
                "status": "error",
                "message": f"flow must be one of: {', '.join(CYCLE_FLOWS)}",
            })
        entry_id = repository.upsert_cycle_entry(CycleEntry(
            user_id=user_id, date=date, phase=phase, flow=flow or None, notes=notes or None,
        ))
        if audit_logger is not None:
            audit_logger.log_tool_call("log_cycle", {"date": date}, user_id=user_id)
        return json.dumps({"status": "saved", "entry_id": entry_id, "date": date, "phase": phase})

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    @mcp.tool
    async def edit_manual_log(
        ctx: Context,
        user_id: str,
        log_id: str,
        value: str = "",
        logged_at: str = "",
        severity: int | None = None,
        notes: str = "",
    ) -> str:
        """Edit a manual log's value, time, severity or notes.

        Args:
            user_id: The user who owns the log.
            log_id: ID returned when the log was created.
            value: New value, if changing it.
            logged_at: New time (ISO 8601), if changing it.
            severity: New severity from 1 to 10, if changing it.
            notes: New notes, if changing them.
        """
        if severity is not None and not 1 <= severity <= 10:
            return json.dumps({"status": "error", "message": "severity must be between 1 and 10"})
        try:
            when = _when(user_id, logged_at) if logged_at else None
        except ValueError:
            return json.dumps({"status": "error", "message": f"Invalid timestamp: {logged_at!r}"})

        updated = repository.update_manual_log(
            user_id,
            log_id,
            value=value or None,
            logged_at=when,
            severity=severity,
            notes=notes or None,
        )
        if not updated:
            return json.dumps({
                "status": "not_found",
                "message": "No such log, or nothing to change.",
            })
        if audit_logger is not None:
            audit_logger.log_tool_call("edit_manual_log", {"log_id": log_id}, user_id=user_id)
        return json.dumps({"status": "updated", "log_id": log_id})

    @mcp.tool
    async def delete_manual_log(ctx: Context, user_id: str, log_id: str) -> str:
        """Delete one manual log.

        Args:
            user_id: The user who owns the log.
            log_id: ID returned when the log was created.
        """
        deleted = repository.delete_manual_log(user_id, log_id)
        if deleted and audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name="delete_manual_log", user_id=user_id, count=1,
                metadata={"log_id": log_id},
            )
        return json.dumps({"status": "deleted" if deleted else "not_found", "log_id": log_id})

    @mcp.tool
    async def get_recent_logs(
        ctx: Context,
        user_id: str,
        log_type: str = "",
        days: int = 7,
        limit: int = 50,
    ) -> str:
        """List a user's recent manual logs, newest first.

        Args:
            user_id: The user whose logs to list.
            log_type: Optional filter (e.g., 'symptom', 'caffeine').
            days: How many days back to look.
            limit: Maximum number of logs to return.
        """
        since = clock() - timedelta(days=max(days, 1))
        logs = repository.get_manual_logs(
            user_id, since=since, log_type=log_type or None, limit=max(limit, 1)
        )
        return json.dumps({
            "status": "ok",
            "count": len(logs),
            "logs": [
                {
                    "log_id": log.id,
                    "log_type": log.log_type,
                    "value": log.value,
                    "severity": log.severity,
                    "logged_at": log.logged_at,
                    "notes": log.notes,
                }
                for log in logs
            ],
        })
