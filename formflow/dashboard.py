"""FormFlow -- consultant dashboard (Streamlit).

Send intake links to clients, follow their progress, review submissions
and download CSV exports.  Works directly on the data directory, without
the API server.

Run with ``streamlit run formflow/dashboard.py``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import streamlit as st

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
from formflow import audit_log, auth, export, instance_store, submission_service, tokens
from formflow.config import get_settings
from formflow.errors import SchemaError, TemplateNotFoundError
from formflow.log_config import configure_logging

configure_logging()
settings = get_settings()

st.set_page_config(page_title="FormFlow -- Dashboard", layout="wide")

auth.require_auth()
auth.render_logout()

st.title("FormFlow")

# -- Stats --------------------------------------------------------------------

counts = instance_store.instance_counts()
cols = st.columns(5)
for col, (label, key) in zip(cols, [
    ("Total", "TOTAL"),
    ("Sent", "SENT"),
    ("In progress", "IN_PROGRESS"),
    ("Completed", "COMPLETED"),
    ("Expired", "EXPIRED"),
]):
    col.metric(label, counts.get(key, 0))

tab_send, tab_forms, tab_subs, tab_templates = st.tabs(
    ["Send Form", "Forms", "Submissions", "Templates"]
)

# -- Send a form link ---------------------------------------------------------

with tab_send:
    templates = instance_store.list_templates(active_only=True)
    if not templates:
        st.info("Create a template first.")
    else:
        with st.form("send_form"):
            names = {t.name: t.id for t in templates}
            template_name = st.selectbox("Template", list(names.keys()))
            client_email = st.text_input("Client email")
            client_name = st.text_input("Client name")
            expiry_days = st.number_input(
                "Link valid for (days)",
                min_value=tokens.MIN_EXPIRY_DAYS,
                max_value=float(settings.max_expiry_days),
                value=float(settings.default_expiry_days),
                step=0.5,
            )
            message = st.text_area("Personal message", max_chars=1000)
            send = st.form_submit_button("Create link", type="primary")

        if send:
            if "@" not in client_email:
                st.error("Please enter a valid client email.")
            else:
                try:
                    instance = instance_store.create_instance(
                        template_id=names[template_name],
                        client_email=client_email.strip(),
                        client_name=client_name.strip(),
                        expiry_days=expiry_days,
                        personal_message=message.strip(),
                    )
                except TemplateNotFoundError as exc:
                    st.error(exc.message)
                else:
                    audit_log.record("INSTANCE_CREATED", instance.id, actor_type="STAFF",
                                     template_id=instance.template_id)
                    link = f"{settings.intake_base_url}/?token={instance.secure_token}"
                    st.success("Link created. Send it to your client:")
                    st.code(link, language=None)

# -- Forms --------------------------------------------------------------------

with tab_forms:
    rows = []
    for inst in instance_store.list_instances():
        template = instance_store.load_template(inst.template_id)
        rows.append({
            "Client": inst.client_name or inst.client_email,
            "Email": inst.client_email,
            "Form": template.name if template else "",
            "Status": instance_store.effective_status(inst).value,
            "Expires in": tokens.time_until_expiry_string(inst.expires_at),
            "Created": inst.created_at[:10],
        })
    if rows:
        st.dataframe(rows, use_container_width=True, hide_index=True)
    else:
        st.info("No forms sent yet.")

# -- Submissions --------------------------------------------------------------

with tab_subs:
    submissions = submission_service.list_submissions()
    if not submissions:
        st.info("No submissions yet.")
    else:
        csv_all = export.generate_submissions_csv(submissions)
        st.download_button(
            "Download all as CSV", csv_all.content, file_name=csv_all.filename,
            mime=csv_all.content_type,
        )
        for item in submissions:
            with st.expander(f"{item.client_name or item.client_email} -- {item.form_title} ({item.id})"):
                st.caption(f"Submitted {export.format_date_for_csv(item.submitted_at)}")
                flat = export.flatten_nested_data(item.data)
                st.table({export.format_field_name(k): [v] for k, v in flat.items()})
                single = export.generate_single_submission_csv(item)
                st.download_button(
                    "Download CSV", single.content, file_name=single.filename,
                    mime=single.content_type, key=f"dl_{item.id}",
                )

# -- Templates ----------------------------------------------------------------

with tab_templates:
    for t in instance_store.list_templates():
        st.markdown(f"**{t.name}** {'' if t.is_active else '(inactive)'} -- {t.category or 'uncategorised'}")

    st.markdown("---")
    with st.form("new_template"):
        name = st.text_input("Template name")
        category = st.text_input("Category")
        description = st.text_area("Description")
        schema_text = st.text_area("Schema (JSON)", height=240,
                                   value='{"type": "object", "properties": {}, "required": []}')
        ui_text = st.text_area("UI schema (JSON)", value="{}")
        save = st.form_submit_button("Save template")

    if save:
        try:
            template = instance_store.create_template(
                name=name.strip(),
                schema=json.loads(schema_text),
                ui_schema=json.loads(ui_text or "{}"),
                description=description.strip(),
                category=category.strip(),
            )
        except json.JSONDecodeError as exc:
            st.error(f"Invalid JSON: {exc}")
        except SchemaError as exc:
            st.error(f"Invalid schema: {exc}")
        else:
            audit_log.record("TEMPLATE_SAVED", template.id, actor_type="STAFF")
            st.success(f"Template '{template.name}' saved.")
            st.rerun()
