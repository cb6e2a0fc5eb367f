# assignments/management/commands/export_assignment_ledger.py

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from decimal import Decimal
import logging

from academics.services import AcademicCalendar
from students.models import Pupil
from assignments.bridge import FeeBridge
from assignments.conf import get_setting

logger = logging.getLogger(__name__)

HEADERS = [
    '#', 'Admission No.', 'Pupil', 'Fee', 'Type', 'Amount', 'Paid',
    'Balance', 'Payment Status', 'Status', 'Validity',
]

COLUMN_WIDTHS = {
    'A': 5, 'B': 15, 'C': 25, 'D': 35, 'E': 12, 'F': 14,
    'G': 14, 'H': 14, 'I': 15, 'J': 12, 'K': 25,
}


class Command(BaseCommand):
    help = 'Export uniform and requirement balances of every pupil to an Excel workbook'

    def add_arguments(self, parser):
        parser.add_argument('--output', help='Path of the .xlsx file to write')
        parser.add_argument('--year', help='Only assignments counting toward this academic year id')
        parser.add_argument('--term', help='Only assignments counting toward this term id')
        parser.add_argument(
            '--outstanding-only',
            action='store_true',
            help='Skip fee lines that are fully paid'
        )

    def handle(self, *args, **options):
        output = options.get('output') or f"assignment_ledger_{timezone.now():%Y%m%d_%H%M}.xlsx"
        if not output.endswith('.xlsx'):
            raise CommandError("Output file must have an .xlsx extension")

        calendar = AcademicCalendar.from_database()
        year_id = options.get('year')
        term_id = options.get('term')

        if year_id and calendar.get_year(year_id) is None:
            raise CommandError(f"Academic year {year_id} does not exist")
        if term_id and calendar.get_term(term_id) is None:
            raise CommandError(f"Term {term_id} does not exist")

        self.stdout.write(self.style.WARNING('Collecting assignment ledger...'))

        rows = []
        pupils = Pupil.objects.select_related('current_class').order_by('admission_number')
        for pupil in pupils:
            fees = FeeBridge.fees_for_pupil(
                pupil, year_id=year_id, term_id=term_id, calendar=calendar
            )
            for fee in fees:
                if options['outstanding_only'] and fee.is_settled:
                    continue
                rows.append((pupil, fee))

        workbook = self.build_workbook(rows, calendar, year_id, term_id)
        workbook.save(output)

        logger.info(f"Exported {len(rows)} ledger rows to {output}")
        self.stdout.write(self.style.SUCCESS(f"Exported {len(rows)} fee line(s) to {output}"))

    def build_workbook(self, rows, calendar, year_id=None, term_id=None):
        wb = Workbook()
        ws = wb.active
        ws.title = "Assignment Ledger"

        # Define styles
        header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
        header_font = Font(bold=True, color="FFFFFF", size=12)
        header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)

        border_style = Border(
            left=Side(style='thin', color='000000'),
            right=Side(style='thin', color='000000'),
            top=Side(style='thin', color='000000'),
            bottom=Side(style='thin', color='000000')
        )

        # Title row
        ws.merge_cells('A1:K1')
        title_cell = ws['A1']
        title_cell.value = "Uniform and Requirement Ledger"
        title_cell.font = Font(bold=True, size=16, color="4472C4")
        title_cell.alignment = Alignment(horizontal="center", vertical="center")

        # Subtitle with date and period
        ws.merge_cells('A2:K2')
        subtitle_cell = ws['A2']
        period_text = f"Generated on: {timezone.now():%Y-%m-%d %H:%M} | Currency: {get_setting('CURRENCY')}"
        if term_id:
            period_text += f" | Term: {calendar.term_label(term_id)}"
        elif year_id:
            period_text += f" | Year: {calendar.year_label(year_id)}"
        else:
            period_text += " | All periods"

        subtitle_cell.value = period_text
        subtitle_cell.font = Font(size=10, italic=True)
        subtitle_cell.alignment = Alignment(horizontal="center")

        ws.append([])  # Empty row

        # Headers
        ws.append(HEADERS)
        for cell in ws[4]:
            cell.fill = header_fill
            cell.font = header_font
            cell.alignment = header_alignment
            cell.border = border_style

        # Data rows
        total_amount = total_paid = total_balance = Decimal('0.00')

        for idx, (pupil, fee) in enumerate(rows, start=1):
            ws.append([
                idx,
                pupil.admission_number,
                pupil.get_full_name(),
                fee.name,
                fee.kind.title(),
                float(fee.amount),
                float(fee.paid),
                float(fee.balance),
                fee.payment_status.title(),
                fee.status.title(),
                fee.validity['validity'] if fee.validity else '',
            ])

            current_row = ws.max_row
            for cell in ws[current_row]:
                cell.border = border_style
                cell.alignment = Alignment(vertical="center", wrap_text=True)

            total_amount += fee.amount
            total_paid += fee.paid
            total_balance += fee.balance

        # Adjust column widths
        for col, width in COLUMN_WIDTHS.items():
            ws.column_dimensions[col].width = width

        # Summary at bottom
        summary_row = ws.max_row + 2
        ws[f'E{summary_row}'] = 'Totals:'
        ws[f'F{summary_row}'] = float(total_amount)
        ws[f'G{summary_row}'] = float(total_paid)
        ws[f'H{summary_row}'] = float(total_balance)
        for col in 'EFGH':
            ws[f'{col}{summary_row}'].font = Font(bold=True)

        return wb
