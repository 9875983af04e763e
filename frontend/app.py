import os, datetime, requests, streamlit as st
from gridlog.config import GRID_BOX_SLOTS, NO_COMMENTS, NOT_AVAILABLE
from gridlog.overrides import slot_edit_payload

API = os.getenv("API_URL", "http://localhost:8000")

st.set_page_config(page_title="Grid Prep Log", layout="wide")
st.title("Grid Prep Log")


def show_result(r):
    """Status line plus the validation messages returned by the API, one per line."""
    body = r.json() if r.content else {}
    if r.ok:
        st.success(body.get("message", r.status_code) if isinstance(body, dict) else r.status_code)
        return body
    st.error(f"{r.status_code}: {body.get('message', body.get('detail', '')) if isinstance(body, dict) else body}")
    for err in (body.get("errors") or []) if isinstance(body, dict) else []:
        st.write(f"- {err}")
    return None


def optional(value):
    return value if value not in ("", None) else None


def shown(value, *placeholders):
    """Resolved value as form text; display placeholders become an empty field."""
    if value is None or value in (NOT_AVAILABLE, *placeholders):
        return ""
    return str(value)


tab_new, tab_db, tab_types, tab_mic, tab_blog = st.tabs(["New session", "Database", "Grid types", "Microscope", "Blog"])

with tab_new:
    st.subheader("Session")
    c1, c2, c3 = st.columns(3)
    user_name = c1.text_input("User name", key="s_user")
    session_date = c2.date_input("Date", value=datetime.date.today(), key="s_date")
    grid_box_name = c3.text_input("Grid box name", key="s_box")
    puck_name = c1.text_input("Puck name", key="s_puck")
    puck_position = c2.text_input("Puck position (1-12)", key="s_puck_pos")
    loading_order = c3.text_input("Loading order", key="s_order")

    st.subheader("Vitrobot settings")
    v1, v2, v3 = st.columns(3)
    humidity = v1.text_input("Humidity (%)", value="95", key="v_hum")
    temperature = v2.text_input("Temperature (°C)", value="4", key="v_temp")
    blot_force = v3.text_input("Blot force", value="0", key="v_force")
    blot_time = v1.text_input("Blot time (s)", value="3", key="v_time")
    wait_time = v2.text_input("Wait time (s)", value="0", key="v_wait")
    glow = v3.checkbox("Glow discharge applied", key="v_glow")

    st.subheader("Grid info")
    grid_types = requests.get(f"{API}/api/grid-types").json()
    type_names = sorted({g["grid_type_name"] for g in grid_types}) or [""]
    g1, g2 = st.columns(2)
    grid_type = g1.selectbox("Grid type", type_names, key="g_type")
    grid_batch = g2.text_input("Grid batch", key="g_batch")

    st.subheader("Slots")
    grids = []
    for slot in range(1, GRID_BOX_SLOTS + 1):
        with st.expander(f"Slot {slot}", expanded=slot == 1):
            used = st.checkbox("Include in session", value=slot == 1, key=f"slot{slot}_used")
            a, b, c = st.columns(3)
            grids.append({
                "slot_number": slot,
                "include_in_session": used,
                "sample_name": optional(a.text_input("Sample name", key=f"slot{slot}_sample")),
                "sample_concentration": optional(b.text_input("Concentration", key=f"slot{slot}_conc")),
                "additives_override": optional(c.text_input("Additives", key=f"slot{slot}_add")),
                "volume_ul_override": optional(a.text_input("Volume (µl)", key=f"slot{slot}_vol")),
                "blot_force_override": optional(b.text_input("Blot force override", key=f"slot{slot}_force")),
                "blot_time_override": optional(c.text_input("Blot time override", key=f"slot{slot}_time")),
                "grid_batch_override": optional(a.text_input("Grid batch override", key=f"slot{slot}_batch")),
                "comments": optional(st.text_area("Comments", key=f"slot{slot}_comments")),
            })

    if st.button("Save session"):
        r = requests.post(f"{API}/api/sessions", json={
            "session": {
                "user_name": user_name,
                "date": session_date.isoformat(),
                "grid_box_name": grid_box_name,
                "loading_order": loading_order,
                "puck_name": puck_name,
                "puck_position": puck_position,
            },
            "vitrobot_settings": {
                "humidity_percent": humidity,
                "temperature_c": temperature,
                "blot_force": blot_force,
                "blot_time_seconds": blot_time,
                "wait_time_seconds": wait_time,
                "glow_discharge_applied": glow,
            },
            "grid_info": {"grid_type": grid_type, "grid_batch": grid_batch},
            "grids": grids,
        })
        show_result(r)

with tab_db:
    st.subheader("Grid boxes")
    show_trashed = st.checkbox("Show also trashed grid boxes", key="db_trashed")
    user_filter = st.text_input("Only sessions of user", key="db_user")
    url = f"{API}/api/users/{user_filter}/sessions" if user_filter else f"{API}/api/sessions"
    sessions = [s for s in requests.get(url).json() if show_trashed or not s["trashed"]]
    if not sessions:
        st.info("No sessions found" if show_trashed else "No active sessions found")

    for s in sessions:
        title = f"{s['grid_box_name'] or 'N/A'} · {s['date']} · {s['sample_names'] or 'N/A'}"
        with st.expander(title):
            detail = requests.get(f"{API}/api/sessions/{s['session_id']}").json()
            st.table([
                {"Slot": slot["slot_number"], "Status": slot["label"]}
                if not slot["used"] else
                {
                    "Slot": slot["slot_number"],
                    "Status": slot["label"],
                    "Grid type": slot["grid_type"],
                    "Blot time": slot["blot_time"],
                    "Blot force": slot["blot_force"],
                    "Volume": slot["volume"],
                    "Additive": slot["additives"],
                    "Comments": slot["comments"],
                }
                for slot in detail["slots"]
            ])
            for slot in detail["slots"]:
                if not slot["used"]:
                    continue
                action = "untrash" if slot["trashed"] else "trash"
                if st.button(f"{action.capitalize()} slot {slot['slot_number']}", key=f"{action}_{slot['prep_id']}"):
                    show_result(requests.patch(f"{API}/api/grid-preparations/{slot['prep_id']}/{action}"))

                # Edits show effective values; only changes against the defaults become overrides
                with st.form(key=f"edit_{slot['prep_id']}"):
                    st.write(f"Edit slot {slot['slot_number']}")
                    e1, e2, e3 = st.columns(3)
                    form = {
                        "blot_force": e1.text_input("Blot force", value=shown(slot["blot_force"]), key=f"e{slot['prep_id']}_blot_force"),
                        "blot_time_seconds": e2.text_input("Blot time (s)", value=shown(slot["blot_time"]), key=f"e{slot['prep_id']}_blot_time"),
                        "volume_ul": e3.text_input("Volume (µl)", value=shown(slot["volume"]), key=f"e{slot['prep_id']}_volume"),
                        "additives": e1.text_input("Additives", value=shown(slot["additives"]), key=f"e{slot['prep_id']}_additives"),
                        "grid_batch": e2.text_input("Grid batch", value=shown(slot["grid_batch"]), key=f"e{slot['prep_id']}_grid_batch"),
                        "comments": st.text_area("Comments", value=shown(slot["comments"], NO_COMMENTS), key=f"e{slot['prep_id']}_comments"),
                    }
                    if st.form_submit_button("Save slot"):
                        payload = slot_edit_payload(detail, slot["slot_number"], form)
                        show_result(requests.put(f"{API}/api/sessions/{s['session_id']}", json=payload))
            if not s["trashed"] and s["grid_count"] and st.button("Trash whole grid box", key=f"trash_box_{s['session_id']}"):
                show_result(requests.patch(f"{API}/api/sessions/{s['session_id']}/trash-all-grids"))

with tab_types:
    st.subheader("Add grid type / batch")
    t1, t2 = st.columns(2)
    type_name = t1.text_input("Grid type name", key="t_name")
    batch = t2.text_input("Batch", key="t_batch")
    manufacturer = t1.text_input("Manufacturer", key="t_manu")
    quantity = t2.text_input("Quantity", key="t_qty")
    specifications = st.text_area("Specifications", key="t_spec")
    if st.button("Add grid type"):
        show_result(requests.post(f"{API}/api/grid-types", json={
            "grid_type_name": type_name,
            "grid_batch": batch,
            "manufacturer": manufacturer,
            "quantity": quantity,
            "specifications": specifications,
        }))
    lookup = st.selectbox("Batches of grid type", type_names, key="t_lookup")
    if lookup:
        st.table(requests.get(f"{API}/api/grid-types/batches", params={"grid_type_name": lookup}).json())

with tab_mic:
    st.subheader("Microscope session")
    m1, m2 = st.columns(2)
    mic_date = m1.date_input("Date", value=datetime.date.today(), key="m_date")
    microscope = m2.text_input("Microscope", key="m_name")
    overnight = m1.checkbox("Overnight", key="m_overnight")
    clipped = m2.checkbox("Clipped at microscope", key="m_clipped")
    issues = st.text_area("Issues", key="m_issues")
    n_slots = st.number_input("Loaded slots", min_value=0, max_value=12, step=1, key="m_slots")
    details = []
    for slot in range(1, int(n_slots) + 1):
        d1, d2, d3 = st.columns(3)
        details.append({
            "microscope_slot": slot,
            "grid_identifier": d1.text_input(f"Grid identifier (slot {slot})", key=f"m{slot}_id"),
            "screened": optional(d2.text_input(f"Screened (slot {slot})", key=f"m{slot}_screened")),
            "collected": d3.checkbox(f"Collected (slot {slot})", key=f"m{slot}_collected"),
        })
    if st.button("Save microscope session"):
        show_result(requests.post(f"{API}/api/microscope-sessions", json={
            "date": mic_date.isoformat(),
            "microscope": microscope,
            "overnight": overnight,
            "clipped_at_microscope": clipped,
            "issues": issues,
            "details": details,
        }))
    if st.button("Refresh microscope sessions"):
        st.json(requests.get(f"{API}/api/microscope-sessions").json())

with tab_blog:
    st.subheader("New post")
    b1, b2 = st.columns(2)
    post_title = b1.text_input("Title", key="b_title")
    post_author = b2.text_input("Author", key="b_author")
    categories = requests.get(f"{API}/api/blog/categories").json()
    post_category = b1.selectbox("Category", categories + ["(new)"], key="b_cat")
    if post_category == "(new)":
        post_category = b2.text_input("New category", key="b_cat_new")
    post_content = st.text_area("Content", height=200, key="b_content")
    if st.button("Publish"):
        show_result(requests.post(f"{API}/api/blog", json={
            "title": post_title,
            "author": post_author,
            "category": post_category,
            "content": post_content,
        }))

    st.subheader("Posts")
    for post in requests.get(f"{API}/api/blog").json():
        with st.expander(f"{post['title']} · {post['category']} · {post['author']}"):
            st.write(post["excerpt"])
            if st.button("Delete", key=f"b_del_{post['slug']}"):
                show_result(requests.delete(f"{API}/api/blog/{post['slug']}"))
