"""Excel audit report for a rating run."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils.dataframe import dataframe_to_rows

from config.settings import get_settings
from cfb_power.data.rating_store import TeamRating
from cfb_power.ratings.engine import RunResult

logger = logging.getLogger(__name__)

RATING_COLUMNS = [
    "rank",
    "team_id",
    "power_rating",
    "offense_rating",
    "defense_rating",
    "talent_component",
    "confidence",
    "shrinkage_factor",
    "games_count",
    "data_source",
]


def ratings_to_dataframe(ratings: Sequence[TeamRating]) -> pd.DataFrame:
    """Ratings as a DataFrame ranked by power, with offense/defense ranks."""
    if not ratings:
        return pd.DataFrame(columns=RATING_COLUMNS + ["off_rank", "def_rank"])
    df = pd.DataFrame([r.to_dict() for r in ratings])
    df = df.sort_values("power_rating", ascending=False).reset_index(drop=True)
    df.insert(0, "rank", range(1, len(df) + 1))
    df["off_rank"] = df["offense_rating"].rank(ascending=False, method="min").astype(int)
    df["def_rank"] = df["defense_rating"].rank(ascending=False, method="min").astype(int)
    return df


class AuditExporter:
    """
    Export a rating run to an Excel workbook.

    Sheets:
    1. Summary - Run metadata, source breakdown, gate outcomes
    2. Ratings - All teams ranked by power rating
    3. Stage Stats - Distribution stats per pipeline stage
    """

    def __init__(self, output_dir: Optional[Path] = None):
        """Initialize audit exporter.

        Args:
            output_dir: Output directory for report files
        """
        settings = get_settings()
        self.output_dir = Path(output_dir) if output_dir else settings.outputs_dir

    def _style_header(self, ws, num_cols: int) -> None:
        """Apply header styling to worksheet."""
        header_fill = PatternFill(
            start_color="1F4E79", end_color="1F4E79", fill_type="solid"
        )
        header_font = Font(color="FFFFFF", bold=True)

        for col in range(1, num_cols + 1):
            cell = ws.cell(row=1, column=col)
            cell.fill = header_fill
            cell.font = header_font
            cell.alignment = Alignment(horizontal="center")

    def _auto_column_width(self, ws) -> None:
        """Auto-adjust column widths based on content."""
        for column in ws.columns:
            values = [len(str(cell.value)) for cell in column if cell.value is not None]
            width = min(max(values, default=0) + 2, 50)
            ws.column_dimensions[column[0].column_letter].width = width

    def _add_borders(self, ws) -> None:
        """Add borders to all cells with data."""
        thin = Side(style="thin")
        border = Border(left=thin, right=thin, top=thin, bottom=thin)
        for row in ws.iter_rows():
            for cell in row:
                if cell.value is not None:
                    cell.border = border

    def _write_frame(self, ws, df: pd.DataFrame, decimals: int = 3) -> None:
        number_format = "0." + "0" * decimals
        for r_idx, row in enumerate(dataframe_to_rows(df, index=False, header=True)):
            for c_idx, value in enumerate(row, start=1):
                cell = ws.cell(row=r_idx + 1, column=c_idx)
                if isinstance(value, float):
                    cell.value = round(value, decimals)
                    cell.number_format = number_format
                else:
                    cell.value = value

        self._style_header(ws, len(df.columns))
        self._auto_column_width(ws)
        self._add_borders(ws)

    def create_ratings_sheet(self, wb: Workbook, ratings_df: pd.DataFrame) -> None:
        """Create ratings sheet, highlighting the top 25."""
        ws = wb.create_sheet("Ratings")
        columns = [c for c in RATING_COLUMNS + ["off_rank", "def_rank"] if c in ratings_df.columns]
        df = ratings_df[columns]
        self._write_frame(ws, df)

        top_fill = PatternFill(
            start_color="FFF2CC", end_color="FFF2CC", fill_type="solid"
        )
        for row in range(2, min(27, len(df) + 2)):
            for col in range(1, len(columns) + 1):
                ws.cell(row=row, column=col).fill = top_fill

    def create_stage_stats_sheet(self, wb: Workbook, stage_df: pd.DataFrame) -> None:
        """Create stage stats sheet; zero-heavy stages are flagged red."""
        ws = wb.create_sheet("Stage Stats")
        if stage_df.empty:
            ws.cell(row=1, column=1, value="No stage stats recorded")
            return
        self._write_frame(ws, stage_df, decimals=4)

        warn_fill = PatternFill(
            start_color="FFC7CE", end_color="FFC7CE", fill_type="solid"
        )
        zero_col = list(stage_df.columns).index("zero_pct")
        for row_idx, value in enumerate(stage_df["zero_pct"], start=2):
            if value > 0.02:
                ws.cell(row=row_idx, column=zero_col + 1).fill = warn_fill

    def create_summary_sheet(self, wb: Workbook, result: RunResult) -> None:
        summary = wb.create_sheet("Summary", 0)
        summary.cell(row=1, column=1, value="CFB Power Ratings Audit")
        summary.cell(row=1, column=1).font = Font(size=16, bold=True)

        lines = [
            f"Season: {result.season}",
            f"Model Version: {result.model_version}",
            f"Status: {result.status}",
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}",
            "",
            f"Teams Rated: {len(result.ratings)}",
            f"SoS: {result.sos_state.value} ({result.sos_iterations} iterations)",
            f"Upserted: {result.upserted} (failures: {result.upsert_failures})",
            "",
        ]
        lines += [f"Source {k}: {v}" for k, v in result.source_summary.as_dict().items()]
        if result.gate_report is not None:
            lines.append("")
            for gate in result.gate_report.gates:
                lines.append(f"{'PASS' if gate.passed else 'FAIL'} {gate.name}: {gate.message}")

        for i, line in enumerate(lines, start=3):
            if line:
                summary.cell(row=i, column=1, value=line)

        self._auto_column_width(summary)

    def export(self, result: RunResult, filename: Optional[str] = None) -> Path:
        """Export a run to Excel, plus a CSV of its stage log.

        Args:
            result: Finished (or failed) rating run
            filename: Custom filename (optional)

        Returns:
            Path to created workbook
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)

        if filename is None:
            timestamp = datetime.now().strftime("%Y%m%d")
            filename = f"power_ratings_{result.season}_{result.model_version}_{timestamp}.xlsx"

        filepath = self.output_dir / filename

        wb = Workbook()
        wb.remove(wb.active)

        stage_df = result.stage_log.to_dataframe()
        self.create_ratings_sheet(wb, ratings_to_dataframe(result.ratings))
        self.create_stage_stats_sheet(wb, stage_df)
        self.create_summary_sheet(wb, result)

        wb.save(filepath)
        result.stage_log.to_csv(filepath.with_name(filepath.stem + "_stages.csv"))
        logger.info(f"Exported audit report to {filepath}")

        return filepath
