from __future__ import annotations

from typing import Any, Dict

import pandas as pd

from surveillance.data import SEVERITY_ORDER, Severity


def compute_kpis(final_df: pd.DataFrame) -> Dict[str, int]:
    if final_df.empty:
        return {"total_cases": 0, "critical_cases": 0, "records": 0}
    critical = final_df[final_df["severity"] == Severity.CRITICAL.value]
    return {
        "total_cases": int(final_df["cases"].sum()),
        "critical_cases": int(critical["cases"].sum()),
        "records": int(len(final_df)),
    }


def cases_by_country(final_df: pd.DataFrame) -> pd.DataFrame:
    """Long table (country, severity, cases); countries ordered by total cases, descending."""
    if final_df.empty:
        return pd.DataFrame(columns=["country", "severity", "cases", "country_total", "severity_rank"])
    grouped = final_df.groupby(["country", "severity"], as_index=False)["cases"].sum()
    totals = grouped.groupby("country")["cases"].transform("sum")
    grouped = grouped.assign(country_total=totals)
    grouped["severity_rank"] = grouped["severity"].map({s: i for i, s in enumerate(SEVERITY_ORDER)})
    grouped = grouped.sort_values(["country_total", "country", "severity_rank"], ascending=[False, True, True])
    return grouped.reset_index(drop=True)


def severity_share(final_df: pd.DataFrame) -> pd.DataFrame:
    # Every band is listed, even with zero cases, so the legend stays stable.
    sums = final_df.groupby("severity")["cases"].sum() if not final_df.empty else pd.Series(dtype=int)
    out = pd.DataFrame({"severity": SEVERITY_ORDER})
    out["cases"] = out["severity"].map(sums).fillna(0).astype(int)
    total = out["cases"].sum()
    out["share"] = out["cases"] / total if total else 0.0
    return out


def timeline(final_df: pd.DataFrame) -> pd.DataFrame:
    if final_df.empty:
        return pd.DataFrame(columns=["date", "cases"])
    out = final_df.groupby("date", as_index=False)["cases"].sum().sort_values("date")
    out["date"] = pd.to_datetime(out["date"])
    return out.reset_index(drop=True)


def summarize(final_df: pd.DataFrame) -> Dict[str, Any]:
    return {
        "kpis": compute_kpis(final_df),
        "by_country": cases_by_country(final_df).to_dict(orient="records"),
        "severity_share": severity_share(final_df).to_dict(orient="records"),
    }
