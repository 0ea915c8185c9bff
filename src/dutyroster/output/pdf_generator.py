"""PDF generation for roster output.

This module creates printable PDF rosters showing:
- A monthly grid with the staff on each day's regular, consultation and
  on-call slots
- A summary page with score, coverage and per-staff workload
"""

from io import BytesIO
from pathlib import Path
from typing import Union

from dutyroster.domain.models import Schedule, SlotKind, StaffMember

# Color definitions (RGB tuples, 0-1 scale)
COLORS = {
    SlotKind.REGULAR: (0.4, 0.7, 0.4),  # Green
    SlotKind.CONSULTATION: (0.4, 0.4, 0.8),  # Blue
    SlotKind.ON_CALL: (0.8, 0.6, 0.2),  # Orange
    "unassigned": (0.9, 0.5, 0.5),  # Light red
    "header": (0.9, 0.9, 0.9),  # Light gray
}

KIND_LABELS = {
    SlotKind.REGULAR: "Regular",
    SlotKind.CONSULTATION: "Consultation",
    SlotKind.ON_CALL: "On-call",
}

UNASSIGNED_LABEL = "(unassigned)"


def _load_canvas():
    try:
        from reportlab.lib.pagesizes import landscape, letter
        from reportlab.pdfgen import canvas
    except ImportError:
        raise ImportError(
            "reportlab is required for PDF generation. "
            "Install with: pip install reportlab"
        )
    return canvas, landscape(letter)


class PDFGenerator:
    """Generates printable PDF rosters.

    Example:
        >>> generator = PDFGenerator()
        >>> generator.generate(schedule, "roster.pdf")
    """

    def __init__(
        self,
        page_width: float = 792,  # Letter landscape width (11")
        page_height: float = 612,  # Letter landscape height (8.5")
        margin: float = 36,  # 0.5 inch margins
    ):
        self.page_width = page_width
        self.page_height = page_height
        self.margin = margin

    def generate(
        self,
        schedule: Schedule,
        output_path: Union[str, Path],
        include_summary: bool = True,
    ) -> None:
        """Generate the PDF roster and save it to a file.

        Args:
            schedule: The schedule to render.
            output_path: Path to save the PDF.
            include_summary: Whether to include the summary page.
        """
        canvas, pagesize = _load_canvas()
        c = canvas.Canvas(str(output_path), pagesize=pagesize)
        self._draw(c, schedule, include_summary)
        c.save()

    def generate_to_buffer(
        self,
        schedule: Schedule,
        include_summary: bool = True,
    ) -> BytesIO:
        """Generate the PDF roster and return it as a bytes buffer."""
        canvas, pagesize = _load_canvas()
        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=pagesize)
        self._draw(c, schedule, include_summary)
        c.save()
        buffer.seek(0)
        return buffer

    def _draw(self, c, schedule: Schedule, include_summary: bool) -> None:
        staff_map = {m.id: m for m in schedule.staff}
        self._draw_roster_pages(c, schedule, staff_map)
        if include_summary:
            self._draw_summary_page(c, schedule, staff_map)

    def _draw_roster_pages(
        self,
        c,
        schedule: Schedule,
        staff_map: dict[int, StaffMember],
    ) -> None:
        """Draw the monthly grid, one row per day that has slots."""
        rows = self._build_rows(schedule, staff_map)

        row_height = 22
        header_height = 60
        footer_height = 40
        usable_height = self.page_height - 2 * self.margin - header_height - footer_height
        rows_per_page = max(1, int(usable_height / row_height) - 1)

        day_col = 70
        kind_width = (self.page_width - 2 * self.margin - day_col) / len(SlotKind)
        total_pages = max(1, (len(rows) + rows_per_page - 1) // rows_per_page)

        for page_index in range(total_pages):
            page_rows = rows[page_index * rows_per_page : (page_index + 1) * rows_per_page]
            self._draw_header(c, schedule)

            # Column headings
            y = self.page_height - self.margin - header_height
            c.setFillColorRGB(*COLORS["header"])
            c.rect(self.margin, y, self.page_width - 2 * self.margin, row_height, fill=1, stroke=0)
            c.setFillColorRGB(0, 0, 0)
            c.setFont("Helvetica-Bold", 9)
            c.drawString(self.margin + 4, y + 7, "Day")
            for i, kind in enumerate(SlotKind):
                c.drawString(self.margin + day_col + i * kind_width + 4, y + 7, KIND_LABELS[kind])

            for day_label, cells in page_rows:
                y -= row_height
                c.setFont("Helvetica-Bold", 8)
                c.drawString(self.margin + 4, y + 7, day_label)
                for i, kind in enumerate(SlotKind):
                    x = self.margin + day_col + i * kind_width
                    self._draw_cell(c, cells.get(kind, []), kind, x, y, kind_width, row_height)
                c.setStrokeColorRGB(0.8, 0.8, 0.8)
                c.line(self.margin, y, self.page_width - self.margin, y)

            self._draw_legend(c, self.margin, self.margin + 10)
            c.setFont("Helvetica", 9)
            c.drawCentredString(
                self.page_width / 2,
                self.margin - 10,
                f"Page {page_index + 1} of {total_pages}",
            )
            c.showPage()

    def _build_rows(
        self,
        schedule: Schedule,
        staff_map: dict[int, StaffMember],
    ) -> list[tuple[str, dict[SlotKind, list[str]]]]:
        cells: dict[int, dict[SlotKind, list[str]]] = {}
        for assignment in sorted(schedule.assignments, key=lambda a: a.slot.id):
            per_kind = cells.setdefault(assignment.day, {})
            if assignment.staff_id is None:
                name = UNASSIGNED_LABEL
            else:
                member = staff_map.get(assignment.staff_id)
                name = member.full_name if member else f"#{assignment.staff_id}"
            per_kind.setdefault(assignment.kind, []).append(name)

        rows = []
        for day in sorted(cells):
            label = schedule.key.date_of(day).strftime("%a %d")
            rows.append((label, cells[day]))
        return rows

    def _draw_cell(self, c, names: list[str], kind: SlotKind, x, y, width, height) -> None:
        if not names:
            return
        missing = UNASSIGNED_LABEL in names
        color = COLORS["unassigned"] if missing else COLORS[kind]
        c.setFillColorRGB(*color)
        c.rect(x + 1, y + 2, 4, height - 4, fill=1, stroke=0)
        c.setFillColorRGB(0, 0, 0)
        c.setFont("Helvetica", 7)
        text = ", ".join(names)
        max_chars = int((width - 10) / 3.6)
        if len(text) > max_chars:
            text = text[: max_chars - 3] + "..."
        c.drawString(x + 8, y + 7, text)

    def _draw_header(self, c, schedule: Schedule) -> None:
        """Draw page header with month and status."""
        c.setFont("Helvetica-Bold", 16)
        c.drawString(
            self.margin,
            self.page_height - self.margin - 20,
            f"Duty Roster - {schedule.key.date_of(1).strftime('%B %Y')}",
        )
        c.setFont("Helvetica", 10)
        score = str(schedule.score) if schedule.score is not None else "not solved"
        c.drawString(
            self.margin,
            self.page_height - self.margin - 35,
            f"Status: {schedule.status.value}   Score: {score}",
        )

    def _draw_legend(self, c, x: float, y: float) -> None:
        """Draw legend for colors."""
        c.setFont("Helvetica-Bold", 8)
        c.drawString(x, y, "Legend:")

        items = [(kind, KIND_LABELS[kind]) for kind in SlotKind]
        items.append(("unassigned", "Missing coverage"))

        c.setFont("Helvetica", 7)
        current_x = x + 45
        for key, label in items:
            c.setFillColorRGB(*COLORS[key])
            c.rect(current_x, y - 2, 12, 10, fill=1, stroke=1)
            c.setFillColorRGB(0, 0, 0)
            c.drawString(current_x + 15, y, label)
            current_x += 90

    def _draw_summary_page(
        self,
        c,
        schedule: Schedule,
        staff_map: dict[int, StaffMember],
    ) -> None:
        """Draw summary page with coverage and workload."""
        summary = schedule.get_summary()

        c.setFont("Helvetica-Bold", 16)
        c.drawString(
            self.margin,
            self.page_height - self.margin - 20,
            f"Roster Summary - {schedule.key.date_of(1).strftime('%B %Y')}",
        )

        y = self.page_height - self.margin - 60
        c.setFont("Helvetica-Bold", 12)
        c.drawString(self.margin, y, "Overview")
        y -= 20

        c.setFont("Helvetica", 10)
        stats = [
            f"Status: {summary['status']}",
            f"Score: {summary['score'] or 'not solved'}",
            f"Slots: {summary['assigned_slots']} of {summary['total_slots']} assigned",
        ]
        for kind in SlotKind:
            stats.append(f"{KIND_LABELS[kind]} slots: {summary['slots_by_kind'][kind.value]}")
        for stat in stats:
            c.drawString(self.margin + 20, y, stat)
            y -= 15

        y -= 20
        c.setFont("Helvetica-Bold", 12)
        c.drawString(self.margin, y, "Workload per Staff Member")
        y -= 20

        loads = schedule.get_staff_loads()
        max_load = max((sum(k.values()) for k in loads.values()), default=0) or 1
        bar_left = self.margin + 180
        bar_width = 300

        c.setFont("Helvetica", 9)
        for staff_id in sorted(loads):
            if y < self.margin + 20:
                c.showPage()
                y = self.page_height - self.margin - 20
                c.setFont("Helvetica", 9)
            member = staff_map.get(staff_id)
            name = member.full_name if member else f"#{staff_id}"
            per_kind = loads[staff_id]
            total = sum(per_kind.values())

            c.setFillColorRGB(0, 0, 0)
            c.drawString(self.margin + 20, y, name[:28])

            x = bar_left
            for kind in SlotKind:
                width = per_kind[kind] / max_load * bar_width
                if width > 0:
                    c.setFillColorRGB(*COLORS[kind])
                    c.rect(x, y - 2, width, 10, fill=1, stroke=0)
                    x += width
            c.setFillColorRGB(0, 0, 0)
            window = ""
            if member and member.constraints:
                window = f" (min {member.constraints.min_slots}, max {member.constraints.max_slots})"
            c.drawString(bar_left + bar_width + 10, y, f"{total}{window}")
            y -= 15

        c.showPage()
