"""
Built-in page types, panel types and layout templates.

These are seeded into every TypeRegistries at construction and are always
available, whether or not any extension loads. Components are referenced
by the name the rendering side resolves to its own implementation.
"""

from typing import List

from .manifest import EntryKind
from .registry import RegistryEntry, make_entry

DATA_SOURCES = [
    {"value": "records", "label": "Records"},
    {"value": "tickets", "label": "Tickets"},
    {"value": "time-entries", "label": "Time entries"},
]


def builtin_page_types() -> List[RegistryEntry]:
    return [
        make_entry(
            EntryKind.PAGE, "dashboard-collection", "DashboardCollectionPage",
            name="Dashboard Collection",
            icon="layout-grid",
            description="A collection of dashboards with tabs",
            default_config={"dashboards": []},
        ),
        make_entry(
            EntryKind.PAGE, "dashboard", "DashboardPage",
            name="Dashboard",
            icon="layout-dashboard",
            description="A single dashboard of panels on a grid",
            config_schema=[
                {"id": "columns", "type": "number", "label": "Grid columns",
                 "default": 12, "validation": {"min": 1, "max": 24}},
                {"id": "refreshInterval", "type": "number", "label": "Refresh interval (seconds)",
                 "validation": {"min": 0}},
            ],
            default_config={"columns": 12, "panels": []},
        ),
        make_entry(
            EntryKind.PAGE, "layout", "LayoutPage",
            name="Layout",
            icon="columns",
            description="Panels arranged into the slots of a layout template",
            config_schema=[
                {"id": "template", "type": "select", "label": "Layout template", "required": True,
                 "options": [
                     {"value": "single-main", "label": "Single main"},
                     {"value": "sidebar-main", "label": "Sidebar + main"},
                     {"value": "three-column", "label": "Three columns"},
                     {"value": "header-main-footer", "label": "Header, main and footer"},
                 ]},
            ],
            default_config={"template": "single-main", "slots": {}},
        ),
        make_entry(
            EntryKind.PAGE, "settings", "SettingsPage",
            name="Settings",
            icon="settings",
            description="Host and extension settings",
        ),
    ]


def builtin_panel_types() -> List[RegistryEntry]:
    return [
        make_entry(
            EntryKind.PANEL, "text", "TextPanel",
            name="Text",
            icon="type",
            description="Static text or markdown",
            config_schema=[
                {"id": "content", "type": "textarea", "label": "Content", "required": True,
                 "rows": 6, "placeholder": "Write something..."},
            ],
            default_config={"content": ""},
        ),
        make_entry(
            EntryKind.PANEL, "chart", "ChartPanel",
            name="Chart",
            icon="bar-chart",
            description="Aggregated records as a bar, line or pie chart",
            config_schema=[
                {"id": "chartType", "type": "select", "label": "Chart type", "required": True,
                 "options": [
                     {"value": "bar", "label": "Bar"},
                     {"value": "line", "label": "Line"},
                     {"value": "pie", "label": "Pie"},
                 ]},
                {"id": "groupBy", "type": "text", "label": "Group by field"},
                {"id": "timeBucket", "type": "select", "label": "Time bucket",
                 "options": [
                     {"value": "day", "label": "Day"},
                     {"value": "week", "label": "Week"},
                     {"value": "month", "label": "Month"},
                 ]},
                {"id": "dataTransform", "type": "select", "label": "Aggregation",
                 "options": [
                     {"value": "count", "label": "Count"},
                     {"value": "sum", "label": "Sum"},
                     {"value": "average", "label": "Average"},
                 ]},
                {"id": "recordType", "type": "text", "label": "Record type"},
                {"id": "dataSource", "type": "select", "label": "Data source",
                 "options": DATA_SOURCES},
            ],
            default_config={"chartType": "bar", "dataTransform": "count", "dataSource": "records"},
        ),
        make_entry(
            EntryKind.PANEL, "table", "TablePanel",
            name="Table",
            icon="table",
            description="Records in a paged table",
            config_schema=[
                {"id": "dataSource", "type": "select", "label": "Data source", "required": True,
                 "options": DATA_SOURCES},
                {"id": "recordType", "type": "text", "label": "Record type"},
                {"id": "pageSize", "type": "number", "label": "Rows per page",
                 "min": 5, "max": 100, "default": 25},
            ],
            default_config={"dataSource": "records", "pageSize": 25},
        ),
        make_entry(
            EntryKind.PANEL, "kanban", "KanbanPanel",
            name="Kanban",
            icon="trello",
            description="Records grouped into columns by a status field",
            config_schema=[
                {"id": "recordType", "type": "text", "label": "Record type"},
                {"id": "statusField", "type": "text", "label": "Status field", "default": "status"},
            ],
            default_config={"statusField": "status"},
        ),
        make_entry(
            EntryKind.PANEL, "ticket-kanban", "TicketKanbanPanel",
            name="Ticket Kanban",
            icon="ticket",
            description="Tickets grouped by status",
            default_config={"dataSource": "tickets"},
        ),
    ]


def builtin_layout_templates() -> List[RegistryEntry]:
    return [
        make_entry(
            EntryKind.LAYOUT, "single-main", "SingleMainLayout",
            name="Single main",
            description="One full-width content area",
            slots=[{"id": "main", "name": "Main", "default_width": "100%"}],
        ),
        make_entry(
            EntryKind.LAYOUT, "sidebar-main", "SidebarMainLayout",
            name="Sidebar + main",
            description="Narrow sidebar beside a main area",
            slots=[
                {"id": "sidebar", "name": "Sidebar", "default_width": "280px",
                 "constraints": {"min_width": 200, "max_width": 480}},
                {"id": "main", "name": "Main", "default_width": "1fr"},
            ],
        ),
        make_entry(
            EntryKind.LAYOUT, "three-column", "ThreeColumnLayout",
            name="Three columns",
            description="Left, center and right columns",
            slots=[
                {"id": "left", "name": "Left", "default_width": "1fr"},
                {"id": "center", "name": "Center", "default_width": "2fr"},
                {"id": "right", "name": "Right", "default_width": "1fr"},
            ],
        ),
        make_entry(
            EntryKind.LAYOUT, "header-main-footer", "HeaderMainFooterLayout",
            name="Header, main and footer",
            description="Stacked header, main area and footer",
            slots=[
                {"id": "header", "name": "Header", "default_height": "auto"},
                {"id": "main", "name": "Main", "default_height": "1fr"},
                {"id": "footer", "name": "Footer", "default_height": "auto"},
            ],
        ),
    ]
