"""
Planner-based analysis (Postgres and MySQL).

The statement is compiled for the bind's dialect and prefixed with the
dialect's ``EXPLAIN`` in JSON format; the query itself is never executed.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from .analysis import AnalysisMethod, ComplexityAnalysis

logger = logging.getLogger("cqrs_ddd.cql.complexity")

_JOIN_NODES = frozenset({"Nested Loop", "Hash Join", "Merge Join"})


def compile_for(stmt: Any, dialect: Any) -> tuple[str, Any]:
    """SQL string and driver parameters of *stmt* rendered for *dialect*."""
    compiled = stmt.compile(dialect=dialect)
    params = compiled.params
    if compiled.positional:
        params = tuple(params[name] for name in compiled.positiontup)
    return compiled.string, params


def _first_cell(result: Any) -> Any:
    row = result.first()
    value = row[0] if row is not None else None
    if isinstance(value, bytes | bytearray):
        value = value.decode()
    return json.loads(value) if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Postgres
# ---------------------------------------------------------------------------


def explain_postgres(stmt: Any, conn: Any) -> ComplexityAnalysis:
    sql, params = compile_for(stmt, conn.dialect)
    result = conn.exec_driver_sql(f"EXPLAIN (FORMAT JSON, VERBOSE TRUE) {sql}", params)
    analysis = parse_postgres_plan(_first_cell(result))
    logger.debug("Query complexity analysis: %s", analysis)
    return analysis


def collect_plan_nodes(node: dict[str, Any]) -> list[dict[str, Any]]:
    """Depth-first list of *node* and every nested ``Plans`` entry."""
    nodes = [node]
    for child in node.get("Plans") or ():
        nodes.extend(collect_plan_nodes(child))
    return nodes


def parse_postgres_plan(plan: Any) -> ComplexityAnalysis:
    root = plan[0]["Plan"] if isinstance(plan, list) else plan["Plan"]
    cost = float(root.get("Total Cost") or 0)
    rows = int(root.get("Plan Rows") or 0)
    nodes = collect_plan_nodes(root)
    seq_scan_nodes = [n for n in nodes if n.get("Node Type") == "Seq Scan"]
    index_usage = tuple(
        n["Index Name"]
        for n in nodes
        if n.get("Node Type") == "Index Scan" and n.get("Index Name")
    )
    join_nodes = [n for n in nodes if n.get("Node Type") in _JOIN_NODES]

    suggestions: list[str] = []
    if seq_scan_nodes:
        tables = ", ".join(
            dict.fromkeys(str(n.get("Relation Name")) for n in seq_scan_nodes)
        )
        suggestions.append(f"Consider adding indexes to: {tables}")
    if cost > 10_000:
        suggestions.append(
            f"Query cost is very high ({cost:.2f}). Consider adding filters or limits."
        )
    if len(join_nodes) > 3:
        suggestions.append(
            "Consider using a materialized view for this complex join query"
        )

    score = (
        min(cost / 1000, 100)
        + min(rows / 100, 50)
        + len(seq_scan_nodes) * 15
        + len(nodes) * 2
    )
    return ComplexityAnalysis(
        cost=cost,
        estimated_rows=rows,
        complexity_score=float(min(score, 100)),
        method=AnalysisMethod.EXPLAIN,
        suggestions=tuple(suggestions),
        seq_scans=len(seq_scan_nodes),
        index_usage=index_usage,
        plan_nodes=len(nodes),
        details={
            "width": int(root.get("Plan Width") or 0),
            "execution_time_estimate": cost * 0.1 + rows * 0.001,
        },
    )


# ---------------------------------------------------------------------------
# MySQL
# ---------------------------------------------------------------------------


def explain_mysql(stmt: Any, conn: Any) -> ComplexityAnalysis:
    sql, params = compile_for(stmt, conn.dialect)
    result = conn.exec_driver_sql(f"EXPLAIN FORMAT=JSON {sql}", params)
    analysis = parse_mysql_plan(_first_cell(result))
    logger.debug("Query complexity analysis: %s", analysis)
    return analysis


def parse_mysql_plan(plan: dict[str, Any]) -> ComplexityAnalysis:
    block = plan["query_block"]
    cost = float((block.get("cost_info") or {}).get("query_cost") or 0)
    table = block.get("table")
    rows = int(table.get("rows_examined_per_scan") or 0) if isinstance(table, dict) else 0
    using_filesort = block.get("ordering_operation") is not None
    using_temporary = block.get("grouping_operation") is not None

    suggestions: list[str] = []
    if using_filesort:
        suggestions.append("Query uses filesort - consider adding index for ORDER BY")
    if using_temporary:
        suggestions.append(
            "Query uses temporary table - consider optimizing GROUP BY"
        )
    return ComplexityAnalysis(
        cost=cost,
        estimated_rows=rows,
        complexity_score=float(min(cost / 100, 100)),
        method=AnalysisMethod.EXPLAIN,
        suggestions=tuple(suggestions),
        details={"using_filesort": using_filesort, "using_temporary": using_temporary},
    )
