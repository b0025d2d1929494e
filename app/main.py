import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import streamlit as st
import pandas as pd
import plotly.graph_objects as go
from datetime import datetime

from tracker.charts import DrawingArea, PiePlaceholder, to_area
from tracker.config import TrackerConfig, configure_logging
from tracker.domain import EXPENSE, FREQUENCIES, REVENUE, TRANSACTION_TYPES
from tracker.errors import TrackerError
from tracker.events import BUDGET_ALERT, STORAGE_WARNING
from tracker.filters import ALL, TransactionQuery
from tracker.formatting import format_currency, format_date
from tracker.pin import LockState
from tracker.services import FinanceTracker
from tracker.storage import MemoryStore
from tracker.tracking import OVERSPENT, WARNING

st.set_page_config(page_title="Finance Tracker", layout="wide")

WINDOWS = {"7 jours": 7, "30 jours": 30, "12 mois": 365}
PALETTE = ["#6366f1", "#f59e0b", "#10b981", "#ef4444", "#3b82f6", "#ec4899", "#14b8a6", "#a855f7"]


def get_tracker() -> FinanceTracker:
    if "tracker" not in st.session_state:
        config = TrackerConfig.from_env()
        configure_logging(config)
        # browser local storage stand-in for the lifetime of the session
        st.session_state.kv = MemoryStore()
        tracker = FinanceTracker(st.session_state.kv, config)
        tracker.load()
        st.session_state.notices = []
        tracker.bus.subscribe(STORAGE_WARNING, lambda e, p: st.session_state.notices.append(
            ("warning", f"⚠️ Sauvegarde impossible ({p['reason']}), données conservées en mémoire")) or {})
        tracker.bus.subscribe(BUDGET_ALERT, lambda e, p: st.session_state.notices.append(
            ("error" if p["level"] == OVERSPENT else "warning", p["message"])) or {})
        st.session_state.tracker = tracker
    return st.session_state.tracker


def flush_notices():
    for level, message in st.session_state.get("notices", []):
        getattr(st, level)(message)
    st.session_state.notices = []


def run_command(action, success=None):
    try:
        result = action()
    except TrackerError as exc:
        messages = getattr(exc, "messages", None) or [str(exc)]
        for m in messages:
            st.error(m)
        return None
    if success:
        st.session_state.notices.append(("success", success))
    st.rerun()
    return result


def render_lock_screen(tracker: FinanceTracker):
    st.title("🔒 Finance Tracker")
    lock = tracker.lock
    if lock.state is LockState.LOCKED_OUT:
        remaining = lock.lockout_remaining(tracker.clock())
        st.error(f"Trop de tentatives. Réessayez dans {remaining // 60}:{remaining % 60:02d}")
        if st.button("Actualiser"):
            st.rerun()
        return

    creating = lock.state is LockState.AWAITING_CREATION
    label = f"Créez un code PIN ({lock.pin_length} chiffres)" if creating else "Entrez votre code PIN"
    with st.form("pin_form", clear_on_submit=True):
        candidate = st.text_input(label, type="password", max_chars=lock.pin_length)
        submitted = st.form_submit_button("Valider")
    if submitted:
        result = tracker.submit_pin(candidate)
        if result.accepted:
            st.rerun()
        st.error(result.message)


def transactions_frame(transactions) -> pd.DataFrame:
    rows = [{
        "Date": format_date(t.date),
        "Description": t.description,
        "Catégorie": t.category,
        "Type": "Revenu" if t.type == REVENUE else "Dépense",
        "Montant": format_currency(t.amount),
    } for t in transactions]
    return pd.DataFrame(rows, columns=["Date", "Description", "Catégorie", "Type", "Montant"])


def pie_figure(slices) -> go.Figure:
    fig = go.Figure()
    if len(slices) == 1 and isinstance(slices[0], PiePlaceholder):
        fig.add_trace(go.Pie(labels=[slices[0].label], values=[1], marker_colors=["#e5e7eb"],
                             textinfo="label", hoverinfo="skip"))
    else:
        fig.add_trace(go.Pie(
            labels=[s.category for s in slices],
            values=[s.value for s in slices],
            text=[f"{s.share:.0%}" if s.show_label else "" for s in slices],
            textinfo="text",
            marker_colors=[PALETTE[s.fill_index % len(PALETTE)] for s in slices],
            sort=False,
            direction="clockwise",
            rotation=0,
        ))
    fig.update_layout(margin=dict(t=10, b=10, l=10, r=10), height=320)
    return fig


def line_figure(series) -> go.Figure:
    area = DrawingArea(left=0, top=0, width=max(len(series.labels) - 1, 1), height=series.max_value or 1)
    fig = go.Figure()
    for name, points, color in (("Revenus", series.revenue, "#10b981"), ("Dépenses", series.expense, "#ef4444")):
        mapped = to_area(points, area, invert_y=False)
        fig.add_trace(go.Scatter(x=[x for x, _ in mapped], y=[y for _, y in mapped],
                                 mode="lines+markers", name=name, line_color=color))
    fig.update_layout(
        margin=dict(t=10, b=10, l=10, r=10), height=320,
        xaxis=dict(tickmode="array", tickvals=list(range(len(series.labels))), ticktext=series.labels),
    )
    return fig


def render_dashboard(tracker: FinanceTracker):
    st.title("📊 Tableau de bord")
    window = WINDOWS[st.radio("Période", list(WINDOWS), horizontal=True, index=1)]
    report = tracker.dashboard(window_days=window)
    totals = report["totals"]

    k1, k2, k3, k4 = st.columns(4)
    k1.metric("Solde", format_currency(report["balance"]))
    k2.metric("Revenus", format_currency(totals.revenue))
    k3.metric("Dépenses", format_currency(totals.expense))
    k4.metric("Dépense moyenne / jour", format_currency(report["average_per_day"]))

    left, right = st.columns(2)
    with left:
        st.subheader("Dépenses par catégorie")
        st.plotly_chart(pie_figure(report["pie"]), use_container_width=True)
    with right:
        st.subheader("Évolution")
        st.plotly_chart(line_figure(report["series"]), use_container_width=True)

    st.subheader("💸 Plus grosses dépenses")
    if report["top_expenses"]:
        st.table(transactions_frame(report["top_expenses"]))
    else:
        st.info("Aucune dépense enregistrée.")

    if tracker.backup_reminder_due():
        st.info("💾 Pensez à exporter vos données.")
        if st.button("Plus tard"):
            tracker.mark_backup_reminded()
            st.rerun()


def render_transactions(tracker: FinanceTracker):
    st.title("🧾 Transactions")
    with st.form("tx_form", clear_on_submit=True):
        c1, c2 = st.columns(2)
        with c1:
            description = st.text_input("Description")
            amount = st.number_input("Montant (FCFA)", min_value=0.0, step=500.0)
        with c2:
            category = st.text_input("Catégorie")
            tx_type = st.selectbox("Type", TRANSACTION_TYPES,
                                   format_func=lambda v: "Revenu" if v == REVENUE else "Dépense")
        date = st.date_input("Date", value=datetime.now())
        submitted = st.form_submit_button("Ajouter")
    if submitted:
        when = datetime.combine(date, datetime.now().time())
        run_command(lambda: tracker.add_transaction(description, amount, category, tx_type, when),
                    "✅ Transaction ajoutée")

    categories = sorted({t.category for t in tracker.transactions})
    f1, f2, f3 = st.columns([2, 1, 1])
    text = f1.text_input("Rechercher")
    tx_type = f2.selectbox("Filtrer par type", [ALL, REVENUE, EXPENSE])
    category = f3.selectbox("Filtrer par catégorie", [ALL] + categories)
    shown = tracker.filter(TransactionQuery(text=text, type=tx_type, category=category))
    if not shown:
        st.info("Aucune transaction ne correspond aux filtres.")
        return
    st.dataframe(transactions_frame(shown), use_container_width=True, hide_index=True)

    index_by_id = {t.id: i for i, t in enumerate(tracker.transactions)}
    choice = st.selectbox("Supprimer une transaction", shown,
                          format_func=lambda t: f"{format_date(t.date)} · {t.description} · {format_currency(t.amount)}")
    confirm = st.checkbox("Confirmer la suppression")
    if st.button("🗑 Supprimer", disabled=not confirm):
        run_command(lambda: tracker.delete_transaction(index_by_id[choice.id]), "Transaction supprimée")


def render_planning(tracker: FinanceTracker):
    st.title("🎯 Objectifs & budgets")
    goals_col, budgets_col = st.columns(2)

    with goals_col:
        st.subheader("Objectifs")
        for i, progress in enumerate(tracker.goal_statuses()):
            st.markdown(f"**{progress.goal.name}** · {format_currency(progress.goal.target)}")
            st.progress(progress.percent / 100)
            st.caption("🎉 Objectif atteint" if progress.achieved
                       else f"Reste {format_currency(progress.remaining)}")
            if st.button("Supprimer", key=f"goal_{progress.goal.id}"):
                run_command(lambda i=i: tracker.delete_goal(i))
        with st.form("goal_form", clear_on_submit=True):
            name = st.text_input("Nom de l'objectif")
            target = st.number_input("Montant cible", min_value=0.0, step=1000.0)
            if st.form_submit_button("Ajouter l'objectif"):
                run_command(lambda: tracker.add_goal(name, target), "Objectif ajouté")

    with budgets_col:
        st.subheader("Budgets mensuels")
        for i, status in enumerate(tracker.budget_statuses()):
            st.markdown(f"**{status.budget.category}** · {format_currency(status.spent)} / "
                        f"{format_currency(status.budget.amount)}")
            st.progress(min(status.percent, 100) / 100)
            if status.status == OVERSPENT:
                st.error(f"Dépassement de {format_currency(-status.remaining)}")
            elif status.status == WARNING:
                st.warning(f"Plus que {format_currency(status.remaining)}")
            if st.button("Supprimer", key=f"budget_{status.budget.id}"):
                run_command(lambda i=i: tracker.delete_budget(i))
        with st.form("budget_form", clear_on_submit=True):
            category = st.text_input("Catégorie")
            amount = st.number_input("Montant mensuel", min_value=0.0, step=1000.0)
            if st.form_submit_button("Ajouter le budget"):
                run_command(lambda: tracker.add_budget(category, amount), "Budget ajouté")

    st.subheader("🔁 Transactions récurrentes")
    if tracker.recurring:
        st.table(pd.DataFrame([{
            "Description": r.description,
            "Catégorie": r.category,
            "Type": r.type,
            "Fréquence": r.frequency,
            "Montant": format_currency(r.amount),
        } for r in tracker.recurring]))
    with st.form("recurring_form", clear_on_submit=True):
        c1, c2, c3 = st.columns(3)
        description = c1.text_input("Description ")
        amount = c1.number_input("Montant ", min_value=0.0, step=500.0)
        category = c2.text_input("Catégorie ")
        tx_type = c2.selectbox("Type ", TRANSACTION_TYPES)
        frequency = c3.selectbox("Fréquence", FREQUENCIES)
        if st.form_submit_button("Ajouter la règle"):
            run_command(lambda: tracker.add_recurring(description, amount, category, tx_type, frequency),
                        "Règle ajoutée")


def render_settings(tracker: FinanceTracker):
    st.title("⚙️ Paramètres")
    timeout = st.number_input("Verrouillage automatique (minutes, 0 = désactivé)",
                              min_value=0, value=tracker.settings.lock_timeout)
    if timeout != tracker.settings.lock_timeout:
        run_command(lambda: tracker.set_lock_timeout(int(timeout)))
    notifications = st.toggle("Alertes de budget", value=tracker.settings.notifications)
    if notifications != tracker.settings.notifications:
        run_command(lambda: tracker.set_notifications(notifications))

    st.subheader("Code PIN")
    with st.form("pin_settings", clear_on_submit=True):
        current = st.text_input("Code PIN actuel", type="password")
        new_length = st.selectbox("Nouvelle longueur", [4, 5, 6], index=tracker.lock.pin_length - 4)
        change = st.form_submit_button("Changer la longueur")
        reset = st.form_submit_button("Réinitialiser le code PIN")
    if change or reset:
        result = (tracker.change_pin_length(current, new_length) if change
                  else tracker.reset_pin(current))
        if result.accepted:
            st.rerun()
        st.error(result.message)

    st.subheader("Import / export")
    c1, c2 = st.columns(2)
    stamp = datetime.now().strftime("%Y-%m-%d")
    c1.download_button("⬇ Export JSON", tracker.export_json(), file_name=f"transactions_{stamp}.json")
    c2.download_button("⬇ Export CSV", tracker.export_csv(), file_name=f"transactions_{stamp}.csv")
    # a new key empties the uploader once its file has been imported
    upload = st.file_uploader("Importer un fichier JSON", type=["json"],
                              key=f"import_{st.session_state.get('import_round', 0)}")
    replace_all = st.checkbox("Remplacer toutes les transactions", disabled=upload is None)

    def import_upload():
        count = tracker.import_transactions(upload.getvalue())
        st.session_state.import_round = st.session_state.get("import_round", 0) + 1
        return count

    if st.button("⬆ Importer", disabled=upload is None or not replace_all):
        run_command(import_upload, "Import terminé")

    confirm = st.checkbox("Je confirme l'effacement")
    if st.button("🗑 Effacer toutes les données", disabled=not confirm):
        run_command(tracker.clear_data, "Données effacées")


tracker = get_tracker()
tracker.tick()
if not tracker.is_unlocked:
    render_lock_screen(tracker)
    st.stop()
tracker.record_activity()

flush_notices()
menu = st.sidebar.radio("Menu", ["📊 Tableau de bord", "🧾 Transactions", "🎯 Objectifs & budgets", "⚙️ Paramètres"])
if st.sidebar.button("🔒 Verrouiller"):
    tracker.lock_now()
    st.rerun()

if menu == "📊 Tableau de bord":
    render_dashboard(tracker)
elif menu == "🧾 Transactions":
    render_transactions(tracker)
elif menu == "🎯 Objectifs & budgets":
    render_planning(tracker)
else:
    render_settings(tracker)
