"""Detail panel — a three-stage record/layout waterfall.

A much simplified version of the data logic behind a layout-driven record
detail panel:

1. The record id and object name fetch a minimal copy of the record, which
   carries its record type id.
2. The object name and record type id fetch the compact view layout.
3. The record id and the fields the layout references fetch the full record.

The panel's `data` maps each field to its display value, falling back to the
raw value.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from cascadex.state_manager import StateManagerDefinition, define_state_manager
from cascadex.waterfall import aggregate, stage_configuration

LAYOUT_TYPE = "Compact"
LAYOUT_MODE = "View"


def extract_fields(layout: Mapping[str, Any] | None) -> list[str] | None:
    """Qualified names of the fields a layout references."""
    if not layout:
        return None
    object_api_name = layout["object_api_name"]
    return [
        f"{object_api_name}.{component['api_name']}"
        for section in layout["sections"]
        for row in section["layout_rows"]
        for item in row["layout_items"]
        for component in item["layout_components"]
        if component["component_type"] == "Field"
    ]


def field_values(record: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if not record:
        return None
    return {
        field: value.get("display_value") or value.get("value")
        for field, value in record["fields"].items()
    }


def make_detail_panel(
    record_manager: Callable[..., Any],
    layout_manager: Callable[..., Any],
) -> StateManagerDefinition:
    """Build the detail-panel creator on top of the given nested creators.

    Both nested creators are called with a single configuration cell.
    """

    def detail_panel(ctx):
        def create(record_id: str | None = None, object_api_name: str | None = None):
            # Not exposed; the setters below are the only way to change it.
            config = ctx.atom({"record_id": record_id, "object_api_name": object_api_name}, name="config")

            def set_record_id(record_id: str | None) -> None:
                ctx.set_atom(config, {**config.value, "record_id": record_id})

            def set_object_api_name(object_api_name: str | None) -> None:
                ctx.set_atom(config, {**config.value, "object_api_name": object_api_name})

            def initial_record_config(config):
                if not config["record_id"] or not config["object_api_name"]:
                    return None
                # Id is only asked for because some field is required; the
                # record type id comes back regardless.
                return {
                    "record_id": config["record_id"],
                    "fields": [f"{config['object_api_name']}.Id"],
                }

            initial_record = record_manager(stage_configuration(ctx, [config], initial_record_config))

            def layout_config(initial):
                record = initial.get("data")
                if not record:
                    return None
                return {
                    "object_api_name": record["api_name"],
                    "record_type_id": record["record_type_id"],
                    "layout_type": LAYOUT_TYPE,
                    "mode": LAYOUT_MODE,
                }

            layout = layout_manager(stage_configuration(ctx, [initial_record], layout_config))

            def final_record_config(initial, layout):
                if not initial.get("data") or not layout.get("data"):
                    return None
                return {
                    "record_id": initial["data"]["id"],
                    "fields": extract_fields(layout["data"]),
                }

            final_record = record_manager(
                stage_configuration(ctx, [initial_record, layout], final_record_config)
            )

            data = ctx.computed([final_record], lambda final: field_values(final.get("data")), name="data")
            status, error = aggregate(ctx, [initial_record, layout, final_record])

            return {
                "data": data,
                "error": error,
                "status": status,
                "set_object_api_name": set_object_api_name,
                "set_record_id": set_record_id,
            }

        return create

    return define_state_manager(detail_panel)
