"""
Time tracker extension.

Registers a timesheet page and a running-timer panel through register().
"""


class TimesheetPage:
    pass


class TimerPanel:
    pass


def register(ctx):
    ctx.register_page(
        "timesheet",
        TimesheetPage,
        name="Timesheet",
        icon="calendar-clock",
        description="Weekly time entries grouped by project",
        config_schema=[
            {"id": "weekStart", "type": "select", "label": "Week starts on",
             "options": [{"value": "monday", "label": "Monday"}, {"value": "sunday", "label": "Sunday"}]},
            {"id": "roundTo", "type": "number", "label": "Round to (minutes)",
             "validation": {"min": 1, "max": 60}},
        ],
        default_config={"weekStart": "monday", "roundTo": 15},
    )
    ctx.register_panel(
        "timer",
        TimerPanel,
        name="Timer",
        icon="timer",
        description="Start and stop a timer for the current task",
        config_schema=[
            {"id": "project", "type": "text", "label": "Project", "required": True},
            {"id": "billable", "type": "checkbox", "label": "Billable"},
        ],
        default_config={"billable": True},
    )
    ctx.log_info("Registered timesheet page and timer panel")


def unregister(ctx):
    ctx.log_info("Time tracker unloaded")
