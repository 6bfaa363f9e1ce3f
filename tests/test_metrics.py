import unittest

import pandas as pd

from core.data import prepare_context, prepare_incidents
from core.filters import Thresholds, filter_incidents
from core.metrics_dimensions import compute_dimension, compute_dimension_drilldown, group_by_dimension
from core.metrics_history import (
    compute_history_drilldown,
    history_incidents,
    monthly_counts,
    monthly_history,
    sla_history,
)
from core.metrics_overview import compute_alert_list, compute_overview, incident_detail
from core.metrics_sla import (
    compliance_rate,
    compliance_status,
    compute_sla,
    compute_sla_drilldown,
    format_sla_breach,
    sla_breach_hours,
    sla_rollup,
)
from tests.fixtures import NOW, WINDOW, numbers, sample_frame


def _by_priority(rows):
    return {r["priority"]: r for r in rows}


class SlaTests(unittest.TestCase):
    def setUp(self):
        self.df = prepare_incidents(
            [
                {"Number": "a", "Priority": "P1", "Opened": "2025-03-01T00:00:00Z", "Updated": "2025-03-01T00:30:00Z"},
                {"Number": "b", "Priority": "P1", "Opened": "2025-03-01T00:00:00Z", "Updated": "2025-03-01T03:00:00Z"},
                {"Number": "c", "Priority": "xyz", "Opened": "2025-03-01T00:00:00Z", "Updated": "2025-03-02T11:00:00Z"},
                {"Number": "d", "Priority": "P4", "State": "pending", "Opened": "bad"},
            ],
            loaded_at=NOW,
        )

    def test_breach_hours_truncate_to_whole_hours(self):
        breach = sla_breach_hours(self.df, now=NOW).tolist()
        self.assertEqual(breach[:3], [-1.0, 2.0, -1.0])
        self.assertTrue(pd.isna(breach[3]))

    def test_format_sla_breach(self):
        cases = {
            25: "1 dia e 1 hora fora do SLA",
            48: "2 dias fora do SLA",
            50: "2 dias e 2 horas fora do SLA",
            1: "1 hora fora do SLA",
            2: "2 horas fora do SLA",
            0: "Dentro do SLA",
            -5: "Dentro do SLA",
            None: "Tempo não calculado",
            float("nan"): "Tempo não calculado",
        }
        for hours, expected in cases.items():
            with self.subTest(hours=hours):
                self.assertEqual(format_sla_breach(hours), expected)

    def test_rollup_counts_and_status(self):
        rows = _by_priority(sla_rollup(self.df, now=NOW))
        self.assertEqual(list(rows), ["P1", "P2", "P3", "P4", "Não definido"])
        self.assertEqual((rows["P1"]["within_sla"], rows["P1"]["outside_sla"]), (1, 1))
        self.assertEqual(rows["P1"]["compliance_rate"], 50.0)
        self.assertEqual(rows["P1"]["status"], "red")
        self.assertEqual(rows["P2"]["total"], 0)
        self.assertEqual(rows["P2"]["compliance_rate"], 0.0)
        self.assertEqual((rows["Não definido"]["within_sla"], rows["Não definido"]["threshold_hours"]), (1, 36))
        # Unparseable Opened counts as outside.
        self.assertEqual((rows["P4"]["outside_sla"], rows["P4"]["on_hold"]), (1, 1))

    def test_rollup_totals_match(self):
        for row in sla_rollup(self.df, now=NOW):
            self.assertEqual(row["within_sla"] + row["outside_sla"], row["total"])

    def test_on_hold_only(self):
        rows = _by_priority(sla_rollup(self.df, on_hold_only=True, now=NOW))
        self.assertEqual({p: r["total"] for p, r in rows.items() if r["total"]}, {"P4": 1})

    def test_compliance_helpers(self):
        self.assertEqual(compliance_rate(0, 0), 0.0)
        self.assertEqual(compliance_rate(3, 1), 75.0)
        self.assertEqual(compliance_status(95.0), "green")
        self.assertEqual(compliance_status(90.0), "yellow")
        self.assertEqual(compliance_status(84.9), "red")
        self.assertEqual(compliance_status(80.0, Thresholds(sla_target_pct=80.0)), "green")

    def test_compute_sla_and_drilldown(self):
        ctx = prepare_context({}, self.df, now=NOW, filtered=self.df)
        filters = ctx["filters"]
        payload = compute_sla(filters, ctx)
        self.assertEqual(payload["kpis"]["within_sla"], 2)
        self.assertEqual(payload["kpis"]["outside_sla"], 2)
        drill = compute_sla_drilldown(filters, ctx, priority="P1", compliant=False)
        self.assertEqual(drill["count"], 1)
        self.assertEqual(drill["incidents"][0]["number"], "b")
        self.assertEqual(drill["incidents"][0]["sla_breach"], "2 horas fora do SLA")


class DimensionTests(unittest.TestCase):
    def setUp(self):
        self.df = sample_frame()
        self.filtered = filter_incidents(self.df, WINDOW)

    def test_user_grouping(self):
        rows = group_by_dimension(self.filtered, "user")
        self.assertEqual([r["name"] for r in rows], ["Ana", "Carlos", "Eva"])
        ana = rows[0]
        self.assertEqual(ana["total"], 2)
        self.assertEqual(ana["percentage"], 50.0)
        self.assertEqual((ana["priorities"]["P1"], ana["priorities"]["P2"], ana["priorities"]["P4"]), (1, 1, 0))
        self.assertEqual(ana["open_incidents"], 2)
        self.assertEqual(ana["critical_pending"], 2)
        self.assertEqual(ana["states"]["Em Espera"], 1)
        self.assertEqual(rows[1]["open_incidents"], 0)

    def test_top_n_keeps_percentage_of_all(self):
        rows = group_by_dimension(self.filtered, "user", top_n=1)
        self.assertEqual([(r["name"], r["percentage"]) for r in rows], [("Ana", 50.0)])

    def test_missing_values_use_sentinel(self):
        rows = group_by_dimension(self.filtered, "location")
        self.assertEqual([(r["name"], r["total"]) for r in rows], [("Não informado", 3), ("São Paulo", 1)])
        users = [r["name"] for r in group_by_dimension(self.df, "user")]
        self.assertIn("Não identificado", users)

    def test_unknown_dimension(self):
        with self.assertRaises(ValueError):
            group_by_dimension(self.filtered, "bogus")

    def test_empty_frame(self):
        self.assertEqual(group_by_dimension(self.filtered.iloc[0:0], "group"), [])

    def test_drilldown_counts_states_before_status_filter(self):
        ctx = prepare_context(WINDOW, self.df, now=NOW)
        out = compute_dimension_drilldown(WINDOW, ctx, dimension="group", value="Service Desk", status="Fechado")
        self.assertEqual(out["count"], 1)
        self.assertEqual(out["incidents"][0]["number"], "7")
        self.assertEqual(out["status_counts"]["Em Espera"], 1)
        self.assertEqual(out["status_counts"]["Fechado"], 1)

    def test_subcategory_breakdown_within_category_bucket(self):
        rows = group_by_dimension(self.filtered, "subcategory")
        self.assertEqual(
            [(r["name"], r["total"]) for r in rows],
            [("Não especificado", 2), ("Licenciamento", 1), ("Teclado", 1)],
        )
        ctx = prepare_context(WINDOW, self.df, now=NOW)
        software = compute_dimension(WINDOW, ctx, dimension="subcategory", bucket="Software")
        self.assertEqual(software["total_incidents"], 1)
        self.assertEqual([(r["name"], r["percentage"]) for r in software["groups"]], [("Licenciamento", 100.0)])
        hardware = compute_dimension(WINDOW, ctx, dimension="subcategory", bucket="Hardware")
        self.assertEqual([r["name"] for r in hardware["groups"]], ["Teclado"])
        self.assertEqual(compute_dimension(WINDOW, ctx, dimension="subcategory", bucket="Cloud")["groups"], [])

    def test_drilldown_scoped_to_bucket(self):
        ctx = prepare_context(WINDOW, self.df, now=NOW)
        out = compute_dimension_drilldown(WINDOW, ctx, dimension="subcategory", value="Não especificado", bucket="Server")
        self.assertEqual([r["number"] for r in out["incidents"]], ["9999"])

    def test_compute_dimension_chart_is_capped(self):
        ctx = prepare_context(WINDOW, self.df, now=NOW)
        out = compute_dimension(WINDOW, ctx, dimension="group")
        self.assertEqual(out["total_incidents"], 4)
        self.assertEqual(out["groups"][0]["name"], "Service Desk")
        self.assertLessEqual(len(out["chart"]), 5)
        self.assertEqual(out["chart"][0]["P2"], 1)


class HistoryTests(unittest.TestCase):
    def setUp(self):
        self.df = sample_frame()
        self.filtered = filter_incidents(self.df, WINDOW)

    def test_monthly_counts(self):
        self.assertEqual(
            monthly_counts(self.filtered),
            [{"month": "2025-02", "count": 1}, {"month": "2025-03", "count": 3}],
        )

    def test_monthly_counts_skip_unparseable_dates(self):
        counts = monthly_counts(self.df)
        self.assertEqual(sum(c["count"] for c in counts), 5)

    def test_monthly_history_top_values(self):
        out = monthly_history(self.filtered, "group", top_n=2)
        self.assertEqual(out["values"], ["Service Desk", "Infra"])
        self.assertEqual(out["months"], ["2025-02", "2025-03"])
        points = {(p["value"], p["month"]): p["count"] for p in out["series"]}
        self.assertEqual(points[("Service Desk", "2025-02")], 1)
        self.assertEqual(points[("Service Desk", "2025-03")], 1)
        self.assertEqual(points[("Infra", "2025-02")], 0)

    def test_history_point_drilldown(self):
        self.assertEqual(numbers(history_incidents(self.filtered, "group", "Service Desk", "2025-03")), ["1234"])
        ctx = prepare_context(WINDOW, self.df, now=NOW)
        out = compute_history_drilldown(WINDOW, ctx, dimension="group", value="Service Desk", month="2025-02")
        self.assertEqual([r["number"] for r in out["incidents"]], ["7"])

    def test_sla_history(self):
        rows = {r["month"]: r for r in sla_history(self.filtered, now=NOW)}
        self.assertEqual(rows["2025-02"]["compliance_rate"], 100.0)
        self.assertEqual((rows["2025-03"]["within_sla"], rows["2025-03"]["outside_sla"]), (1, 2))


class OverviewTests(unittest.TestCase):
    def setUp(self):
        self.df = sample_frame()
        self.ctx = prepare_context(WINDOW, self.df, now=NOW)

    def test_kpis(self):
        kpis = compute_overview(WINDOW, self.ctx)["kpis"]
        self.assertEqual(kpis["total"], 4)
        self.assertEqual(kpis["high_priority"], 2)
        self.assertEqual(kpis["trend"], "↑ 50.00%")
        self.assertEqual(kpis["categories"], 4)
        self.assertEqual(
            (kpis["critical_pending"], kpis["pending"], kpis["on_hold"], kpis["out_of_rule"]),
            (3, 3, 1, 1),
        )

    def test_trend_is_zero_without_high_priority(self):
        ctx = prepare_context(WINDOW, self.df.iloc[0:0], now=NOW)
        self.assertEqual(compute_overview(WINDOW, ctx)["kpis"]["trend"], "0%")

    def test_alert_list(self):
        out = compute_alert_list(WINDOW, self.ctx, kind="on_hold")
        self.assertEqual([r["number"] for r in out["incidents"]], ["1234"])
        with self.assertRaises(ValueError):
            compute_alert_list(WINDOW, self.ctx, kind="bogus")

    def test_incident_detail(self):
        detail = incident_detail(self.df, "7", now=NOW)
        self.assertEqual(detail["priority_norm"], "P4")
        self.assertEqual(detail["state_norm"], "Fechado")
        self.assertEqual(detail["sla_breach"], "Dentro do SLA")
        self.assertEqual(detail["opened_display"], "15/02/2025 às 08:00")
        self.assertEqual(detail["sla_threshold_hours"], 72)
        self.assertIsNone(incident_detail(self.df, "404", now=NOW))

    def test_incident_detail_with_bad_opened(self):
        detail = incident_detail(self.df, "8888", now=NOW)
        self.assertEqual(detail["opened_display"], "Data inválida")
        self.assertEqual(detail["sla_breach"], "Tempo não calculado")


if __name__ == "__main__":
    unittest.main()
