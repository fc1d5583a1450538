from datetime import datetime, timedelta
from decimal import Decimal
import pytest
from sqlalchemy import func, select
from dairylink.errors import RateChartConflict
from dairylink.models.rate_chart import RateChart, parse_rate_chart_csv
from dairylink.models.schema import rate_chart_data

UPLOADED_AT = datetime(2025, 11, 1, 9, 0, 0)

PRICE_CSV = """CLR,FAT,SNF,RATE
28.00,4.5,8.5,42.50
27.00,3.5,8.0,35.00
27.50,3.5,7.5,34.25
"""


def assign(ctx, society_id, csv_text=PRICE_CSV, **kwargs):
    kwargs.setdefault('now', UPLOADED_AT)
    return RateChart.assign(
        ctx, society_id, 'COW', parse_rate_chart_csv(csv_text), 'cow.csv', 'Ravi Kumar', **kwargs
    )


def data_row_count(ctx):
    return ctx.execute(select(func.count()).select_from(rate_chart_data)).scalar()


class TestParseCsv:
    def test_parses_rows(self):
        rows = parse_rate_chart_csv(PRICE_CSV)

        assert len(rows) == 3
        assert rows[0] == {
            'clr': Decimal('28.00'),
            'fat': Decimal('4.5'),
            'snf': Decimal('8.5'),
            'rate': Decimal('42.50'),
        }

    def test_header_is_case_insensitive_and_reorderable(self):
        rows = parse_rate_chart_csv('rate,fat,snf,clr\n40,4.0,8.5,28\n')
        assert rows[0]['rate'] == Decimal('40')
        assert rows[0]['clr'] == Decimal('28')

    def test_missing_header(self):
        with pytest.raises(ValueError, match='Missing required CSV headers: RATE'):
            parse_rate_chart_csv('CLR,FAT,SNF\n28,4.0,8.5\n')

    def test_header_only(self):
        with pytest.raises(ValueError, match='at least one data row'):
            parse_rate_chart_csv('CLR,FAT,SNF,RATE\n')

    def test_collects_row_errors(self):
        with pytest.raises(ValueError) as excinfo:
            parse_rate_chart_csv('CLR,FAT,SNF,RATE\n28,abc,8.5,40\n28,4.0\n28,,8.5,40\n')

        message = str(excinfo.value)
        assert 'Row 2: All values must be numeric' in message
        assert 'Row 3: Invalid number of columns' in message
        assert 'Row 4: All fields (CLR, FAT, SNF, RATE) are required' in message


class TestAssign:
    def test_price_rows_ordered_by_fat_then_snf(self, seeded, ctx):
        chart_id = assign(ctx, seeded.society_id)

        rows = RateChart.get_price_rows(ctx, chart_id)

        assert [(row['fat'], row['snf']) for row in rows] == [
            (Decimal('3.50'), Decimal('7.50')),
            (Decimal('3.50'), Decimal('8.00')),
            (Decimal('4.50'), Decimal('8.50')),
        ]
        assert RateChart.find_active(ctx, seeded.society_id, 'cow')['id'] == chart_id

    def test_conflict_without_replace(self, seeded, ctx):
        chart_id = assign(ctx, seeded.society_id)

        with pytest.raises(RateChartConflict) as excinfo:
            assign(ctx, seeded.society_id)
        assert excinfo.value.existing_chart_id == chart_id

    def test_replace(self, seeded, ctx):
        assign(ctx, seeded.society_id)

        new_id = assign(ctx, seeded.society_id, 'CLR,FAT,SNF,RATE\n26,3.0,8.0,30\n', replace=True)

        assert RateChart.find_active(ctx, seeded.society_id, 'COW')['id'] == new_id
        assert data_row_count(ctx) == 1

    def test_retired_chart_is_replaced_without_conflict(self, seeded, ctx):
        chart_id = assign(ctx, seeded.society_id)
        RateChart.retire(ctx, chart_id)

        assert RateChart.find_active(ctx, seeded.society_id, 'COW') is None
        new_id = assign(ctx, seeded.society_id)
        assert RateChart.find_active(ctx, seeded.society_id, 'COW')['id'] == new_id

    def test_rejects_unknown_channel(self, seeded, ctx):
        with pytest.raises(ValueError):
            RateChart.assign(ctx, seeded.society_id, 'GOAT', parse_rate_chart_csv(PRICE_CSV), 'x.csv', 'Ravi')


class TestSharedCharts:
    def test_shared_chart_reads_master_rows(self, seeded, ctx):
        master_id = assign(ctx, seeded.society_id, share_with=[seeded.other_society_id])

        shared = RateChart.find_active(ctx, seeded.other_society_id, 'COW')

        assert shared['shared_chart_id'] == master_id
        assert len(RateChart.get_price_rows(ctx, shared['id'])) == 3
        assert data_row_count(ctx) == 3

    def test_replacing_master_hands_rows_to_reader(self, seeded, ctx):
        assign(ctx, seeded.society_id, share_with=[seeded.other_society_id])

        assign(ctx, seeded.society_id, 'CLR,FAT,SNF,RATE\n26,3.0,8.0,30\n', replace=True)

        shared = RateChart.find_active(ctx, seeded.other_society_id, 'COW')
        assert shared['shared_chart_id'] is None
        assert len(RateChart.get_price_rows(ctx, shared['id'])) == 3
        assert data_row_count(ctx) == 4


class TestDownloadHistory:
    def test_repeat_download_keeps_one_row(self, seeded, ctx):
        chart_id = assign(ctx, seeded.society_id)
        first = UPLOADED_AT + timedelta(hours=1)
        second = UPLOADED_AT + timedelta(hours=2)

        RateChart.record_download(ctx, chart_id, seeded.machine_id, seeded.society_id, 'COW', now=first)
        RateChart.record_download(ctx, chart_id, seeded.machine_id, seeded.society_id, 'COW', now=second)

        history = RateChart.find_download_history(ctx, chart_id=chart_id)
        assert len(history) == 1
        assert history[0]['downloaded_at'] == second

    def test_one_row_per_machine(self, seeded, ctx):
        chart_id = assign(ctx, seeded.society_id)

        RateChart.record_download(ctx, chart_id, seeded.machine_id, seeded.society_id, 'COW')
        RateChart.record_download(ctx, chart_id, seeded.numeric_machine_id, seeded.society_id, 'COW')

        assert len(RateChart.find_download_history(ctx, chart_id=chart_id)) == 2
        assert len(RateChart.find_download_history(ctx, machine_id=seeded.machine_id)) == 1

    def test_reset(self, seeded, ctx):
        chart_id = assign(ctx, seeded.society_id)
        RateChart.record_download(ctx, chart_id, seeded.machine_id, seeded.society_id, 'COW')
        RateChart.record_download(ctx, chart_id, seeded.numeric_machine_id, seeded.society_id, 'COW')

        assert RateChart.reset_download_history(ctx, chart_id, machine_id=seeded.machine_id) == 1
        assert RateChart.reset_download_history(ctx, chart_id) == 1
        assert RateChart.find_download_history(ctx, chart_id=chart_id) == []
