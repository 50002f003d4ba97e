"""FormFlow -- client intake page (Streamlit).

Opened from the secure link ``?token=<token>``.  Renders the template's
schema, auto-saves drafts through the API and keeps a local copy of
unsaved changes so nothing is lost when the connection drops.

Run with ``streamlit run formflow/intake_page.py``.
"""

from __future__ import annotations

import asyncio
import copy
import sys
import threading
from datetime import date
from pathlib import Path
from typing import Any

import streamlit as st

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
from formflow.autosave import AutoSaveController, AutoSaveOptions, SaveStatus
from formflow.client import DraftClient, DraftSaveError
from formflow.config import get_settings
from formflow.connectivity import ConnectivityMonitor
from formflow.errors import FORM_ALREADY_SUBMITTED, FORM_EXPIRED, TerminalSaveError
from formflow.field_path import RootPath
from formflow.local_store import LocalFallbackStore
from formflow.log_config import configure_logging
from formflow.renderer import FieldWidget, FormRenderer
from formflow.schema import FormSchema, NumberField, ObjectField

configure_logging()
settings = get_settings()

st.set_page_config(page_title="FormFlow -- Intake Form", layout="centered")


# -- Background auto-save runtime ---------------------------------------------

class ThreadedAutoSave:
    """Drives an AutoSaveController on its own event-loop thread.

    Streamlit reruns the script on the main thread; edits are marshalled to
    the controller's loop so its timers keep running between reruns.
    """

    def __init__(self, controller: AutoSaveController, connectivity: ConnectivityMonitor) -> None:
        self.controller = controller
        self.connectivity = connectivity
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self.loop.run_forever, daemon=True, name="formflow-autosave"
        )
        self._thread.start()

    @property
    def status(self) -> SaveStatus:
        return self.controller.status

    @property
    def last_saved(self):
        return self.controller.last_saved

    @property
    def error(self) -> str | None:
        return self.controller.error

    def update(self, data: Any) -> None:
        self.loop.call_soon_threadsafe(self.controller.update, copy.deepcopy(data))

    async def save_now(self) -> None:
        future = asyncio.run_coroutine_threadsafe(self.controller.save_now(), self.loop)
        await asyncio.wrap_future(future)

    def save_now_blocking(self, timeout: float = 30) -> None:
        asyncio.run_coroutine_threadsafe(self.controller.save_now(), self.loop).result(timeout)

    def probe_connectivity(self) -> None:
        asyncio.run_coroutine_threadsafe(self.connectivity.probe(), self.loop)

    def clear_error(self) -> None:
        self.loop.call_soon_threadsafe(self.controller.clear_error)

    def shutdown(self) -> None:
        self.loop.call_soon_threadsafe(self.controller.close)
        self.loop.call_soon_threadsafe(self.loop.stop)


def _runtime(token: str, form: dict) -> tuple[FormRenderer, ThreadedAutoSave, DraftClient]:
    key = f"_runtime_{token}"
    if key not in st.session_state:
        client = DraftClient(settings.api_base_url, token)
        connectivity = ConnectivityMonitor(health_url=client.health_url)
        controller = AutoSaveController(
            client.save_function(),
            AutoSaveOptions.from_settings(settings, token),
            initial_data=form["draftData"],
            connectivity=connectivity,
            local_store=LocalFallbackStore(settings.data_dir / "local"),
        )
        autosave = ThreadedAutoSave(controller, connectivity)
        renderer = FormRenderer(
            FormSchema.from_dict(form["template"]["schema"]),
            form["template"].get("uiSchema") or {},
            form["draftData"],
            autosave=autosave,
        )
        st.session_state[key] = (renderer, autosave, client)
    return st.session_state[key]


# -- Field drawing ------------------------------------------------------------

def _label(w: FieldWidget) -> str:
    return f"{w.label} *" if w.required else w.label


def _draw_array(w: FieldWidget, value: Any) -> Any:
    items = value if isinstance(value, list) else []
    if isinstance(w.item_schema, ObjectField):
        columns = list(w.item_schema.properties.keys())
        rows = items or [{c: "" for c in columns}]
        edited = st.data_editor(
            rows, num_rows="dynamic", key=f"field_{w.key}", use_container_width=True
        )
        return [row for row in edited if any(v not in ("", None) for v in row.values())]

    text = st.text_area(
        _label(w),
        value="\n".join(str(i) for i in items),
        help=(w.description or "") + " One entry per line.",
        key=f"field_{w.key}",
    )
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if isinstance(w.item_schema, NumberField):
        parsed = []
        for line in lines:
            try:
                parsed.append(int(line) if w.item_schema.integer else float(line))
            except ValueError:
                parsed.append(line)
        return parsed
    return lines


def _draw_widget(w: FieldWidget, renderer: FormRenderer) -> None:
    value = renderer.get_field_value(w.path)
    key = f"field_{w.key}"

    if w.widget == "object":
        with st.container(border=True):
            st.markdown(f"**{w.label}**")
            if w.description:
                st.caption(w.description)
            for child in w.children:
                _draw_widget(child, renderer)
        return

    if w.widget == "select":
        options = [""] + w.options
        index = options.index(value) if value in options else 0
        new_value = st.selectbox(_label(w), options, index=index, help=w.description or None, key=key)
    elif w.widget == "textarea":
        new_value = st.text_area(_label(w), value=str(value), height=40 * w.rows,
                                 max_chars=w.max_length, help=w.description or None, key=key)
    elif w.widget == "date":
        current = None
        if value:
            try:
                current = date.fromisoformat(str(value))
            except ValueError:
                current = None
        picked = st.date_input(_label(w), value=current, help=w.description or None, key=key)
        new_value = picked.isoformat() if picked else ""
    elif w.widget == "number":
        integer = w.step == 1
        cast = int if integer else float
        number = st.number_input(
            _label(w),
            value=cast(value) if value not in ("", None) else None,
            min_value=cast(w.minimum) if w.minimum is not None else None,
            max_value=cast(w.maximum) if w.maximum is not None else None,
            step=cast(w.step or 1),
            help=w.description or None,
            key=key,
        )
        new_value = "" if number is None else number
    elif w.widget == "checkbox":
        new_value = st.checkbox(_label(w), value=bool(value), help=w.description or None, key=key)
    elif w.widget == "array":
        new_value = _draw_array(w, value)
    else:
        new_value = st.text_input(
            _label(w), value=str(value), placeholder=w.placeholder,
            max_chars=w.max_length, help=w.description or None, key=key,
        )

    if new_value != value:
        renderer.handle_field_change(w.path, new_value)

    messages = renderer.errors_for(w.path)
    if st.session_state.get("_show_errors") or value not in ("", None, []):
        for msg in messages:
            st.caption(f":red[{msg}]")


# -- Page ---------------------------------------------------------------------

token = st.query_params.get("token", "")
if not token:
    st.error("This link is missing its access token.")
    st.stop()

try:
    form = DraftClient(settings.api_base_url, token).get_form()
except TerminalSaveError as exc:
    if str(exc) == FORM_EXPIRED:
        st.warning("This form link has expired. Please contact your consultant for a new link.")
    else:
        st.error("This form could not be found. Please check the link you received.")
    st.stop()
except DraftSaveError as exc:
    st.error(f"The form service is unavailable right now. ({exc})")
    st.stop()

if form["instance"]["status"] == "COMPLETED" or st.session_state.get("_submitted"):
    st.success(f"{FORM_ALREADY_SUBMITTED}. Thank you!")
    st.stop()

renderer, autosave, client = _runtime(token, form)
template = form["template"]

st.title(template["name"])
if template.get("description"):
    st.write(template["description"])
if form["instance"].get("personalMessage"):
    st.info(form["instance"]["personalMessage"])
if form["instance"].get("expiringSoon"):
    st.warning(f"This link expires in {form['instance']['timeRemaining']}.")

local = autosave.controller.get_local_data()
if local is not None and local.data != renderer.document:
    st.info(f"Unsaved changes from {local.timestamp:%b %d, %Y %H:%M} were found on this device.")
    if st.button("Restore unsaved changes"):
        for name, val in local.data.items():
            renderer.handle_field_change(RootPath(name), val)
        st.rerun()

st.progress(renderer.progress() / 100, text=f"{renderer.progress()}% of required fields complete")

for widget in renderer.widgets():
    _draw_widget(widget, renderer)


@st.fragment(run_every=2)
def _save_indicator() -> None:
    autosave.probe_connectivity()
    if not autosave.connectivity.online:
        st.caption(":orange[You are offline. Changes are kept on this device.]")
    status = autosave.status
    if status is SaveStatus.SAVING:
        st.caption("Saving...")
    elif status is SaveStatus.SAVED and autosave.last_saved:
        st.caption(f"All changes saved at {autosave.last_saved:%H:%M:%S} UTC")
    elif status is SaveStatus.ERROR:
        st.caption(f":red[Save failed: {autosave.error}]")
        if st.button("Retry save"):
            autosave.clear_error()
            try:
                autosave.save_now_blocking()
            except Exception as exc:  # surfaced through the controller's error state
                st.caption(f":red[{exc}]")


_save_indicator()


def _on_error(errors) -> None:
    st.session_state["_show_errors"] = True
    st.error(f"Please fix {len(errors)} problem(s) before submitting.")


def _on_submit(document: dict) -> None:
    try:
        client.submit(document)
    except (TerminalSaveError, DraftSaveError) as exc:
        st.error(str(exc))
        return
    autosave.controller.clear_local_data()
    autosave.shutdown()
    st.session_state["_submitted"] = True
    st.rerun()


renderer.on_error = _on_error
renderer.on_submit = _on_submit

if st.button("Submit", type="primary", use_container_width=True):
    renderer.submit()
