import csv
import io
import logging
from decimal import Decimal, InvalidOperation
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.dialects import mysql, postgresql, sqlite
from dairylink.errors import RateChartConflict
from dairylink.models.schema import (
    rate_chart_data, rate_chart_download_history, rate_charts
)
from dairylink.utils.clock import local_now

logger = logging.getLogger(__name__)

REQUIRED_CSV_HEADERS = ('CLR', 'FAT', 'SNF', 'RATE')
CHANNELS = ('COW', 'BUF', 'MIX')


def parse_rate_chart_csv(text):
    """Parse an uploaded CLR,FAT,SNF,RATE price table

    Args:
        text: CSV file contents

    Returns:
        List of dicts with Decimal clr, fat, snf and rate

    Raises:
        ValueError: missing headers, no data rows, or invalid cells (all row
            errors are collected into one message)
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        raise ValueError('CSV file must contain header and at least one data row')

    reader = csv.reader(io.StringIO('\n'.join(lines)))
    header = [cell.strip().upper() for cell in next(reader)]
    missing = [name for name in REQUIRED_CSV_HEADERS if name not in header]
    if missing:
        raise ValueError(
            f"Missing required CSV headers: {', '.join(missing)}. "
            f"Required: {', '.join(REQUIRED_CSV_HEADERS)}"
        )

    rows = []
    errors = []
    for line_number, values in enumerate(reader, start=2):
        values = [value.strip() for value in values]
        if len(values) != len(header):
            errors.append(f'Row {line_number}: Invalid number of columns')
            continue

        record = dict(zip(header, values))
        if not all(record[name] for name in REQUIRED_CSV_HEADERS):
            errors.append(f'Row {line_number}: All fields (CLR, FAT, SNF, RATE) are required')
            continue

        try:
            parsed = {name.lower(): Decimal(record[name]) for name in REQUIRED_CSV_HEADERS}
        except InvalidOperation:
            errors.append(f'Row {line_number}: All values must be numeric')
            continue
        if not all(value.is_finite() for value in parsed.values()):
            errors.append(f'Row {line_number}: All values must be numeric')
            continue
        rows.append(parsed)

    if errors:
        raise ValueError(f"CSV validation errors: {'; '.join(errors)}")
    return rows


class RateChart:
    @staticmethod
    def find_by_id(ctx, chart_id):
        stmt = select(rate_charts).where(rate_charts.c.id == chart_id)
        return ctx.execute(stmt).mappings().first()

    @staticmethod
    def find_active(ctx, society_id, channel):
        """Get the assigned (status=1) chart for a society channel, or None"""
        stmt = (
            select(rate_charts)
            .where(
                rate_charts.c.society_id == society_id,
                rate_charts.c.channel == channel.upper(),
                rate_charts.c.status == 1
            )
            .order_by(rate_charts.c.uploaded_at.desc(), rate_charts.c.id.desc())
            .limit(1)
        )
        return ctx.execute(stmt).mappings().first()

    @staticmethod
    def get_price_rows(ctx, chart_id):
        """Get price rows of a chart ordered by fat, then snf

        Charts that share another chart's table read rows from
        COALESCE(shared_chart_id, id).
        """
        data_source = func.coalesce(rate_charts.c.shared_chart_id, rate_charts.c.id)
        stmt = (
            select(rate_chart_data.c.clr, rate_chart_data.c.fat, rate_chart_data.c.snf, rate_chart_data.c.rate)
            .select_from(rate_charts.join(rate_chart_data, rate_chart_data.c.rate_chart_id == data_source))
            .where(rate_charts.c.id == chart_id)
            .order_by(rate_chart_data.c.fat.asc(), rate_chart_data.c.snf.asc(), rate_chart_data.c.id.asc())
        )
        return list(ctx.execute(stmt).mappings().all())

    @staticmethod
    def record_download(ctx, chart_id, machine_id, society_id, channel, now=None):
        """Record that a machine downloaded a chart

        One history row per (machine, chart): a repeat download only refreshes
        downloaded_at. Uses the dialect's native upsert.
        """
        values = {
            'rate_chart_id': chart_id,
            'machine_id': machine_id,
            'society_id': society_id,
            'channel': channel.upper(),
            'downloaded_at': now or local_now(),
        }
        dialect = ctx.connection.dialect.name

        if dialect == 'mysql':
            stmt = mysql.insert(rate_chart_download_history).values(**values)
            stmt = stmt.on_duplicate_key_update(
                downloaded_at=stmt.inserted.downloaded_at,
                channel=stmt.inserted.channel,
                society_id=stmt.inserted.society_id
            )
        elif dialect in ('postgresql', 'sqlite'):
            dialect_insert = postgresql.insert if dialect == 'postgresql' else sqlite.insert
            stmt = dialect_insert(rate_chart_download_history).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=['machine_id', 'rate_chart_id'],
                set_={
                    'downloaded_at': stmt.excluded.downloaded_at,
                    'channel': stmt.excluded.channel,
                    'society_id': stmt.excluded.society_id,
                }
            )
        else:
            existing = ctx.execute(
                select(rate_chart_download_history.c.id).where(
                    rate_chart_download_history.c.machine_id == machine_id,
                    rate_chart_download_history.c.rate_chart_id == chart_id
                )
            ).first()
            if existing is not None:
                stmt = (
                    update(rate_chart_download_history)
                    .where(rate_chart_download_history.c.id == existing.id)
                    .values(downloaded_at=values['downloaded_at'], channel=values['channel'])
                )
            else:
                stmt = insert(rate_chart_download_history).values(**values)

        ctx.execute(stmt)
        logger.info(f"Rate chart {chart_id} download recorded for machine {machine_id}")

    @staticmethod
    def find_download_history(ctx, chart_id=None, machine_id=None):
        stmt = select(rate_chart_download_history)
        if chart_id is not None:
            stmt = stmt.where(rate_chart_download_history.c.rate_chart_id == chart_id)
        if machine_id is not None:
            stmt = stmt.where(rate_chart_download_history.c.machine_id == machine_id)
        return list(ctx.execute(stmt.order_by(rate_chart_download_history.c.id)).mappings().all())

    @staticmethod
    def reset_download_history(ctx, chart_id, machine_id=None):
        """Clear download history of a chart (optionally for one machine)

        Returns:
            Number of history rows deleted
        """
        stmt = delete(rate_chart_download_history).where(
            rate_chart_download_history.c.rate_chart_id == chart_id
        )
        if machine_id is not None:
            stmt = stmt.where(rate_chart_download_history.c.machine_id == machine_id)
        result = ctx.execute(stmt)
        logger.info(f"Reset {result.rowcount} download history rows for rate chart {chart_id}")
        return result.rowcount

    @staticmethod
    def retire(ctx, chart_id):
        """Unassign a chart (status=0) so devices no longer download it"""
        ctx.execute(update(rate_charts).where(rate_charts.c.id == chart_id).values(status=0))
        logger.info(f"Rate chart {chart_id} retired")

    @staticmethod
    def _remove_chart(ctx, chart):
        """Delete a chart row and its price rows

        Price rows other charts still read are handed over to the first of
        those charts instead of being deleted.
        """
        if chart['shared_chart_id'] is None:
            readers = ctx.execute(
                select(rate_charts.c.id)
                .where(rate_charts.c.shared_chart_id == chart['id'])
                .order_by(rate_charts.c.id)
            ).scalars().all()
            if readers:
                heir_id = readers[0]
                ctx.execute(
                    update(rate_chart_data)
                    .where(rate_chart_data.c.rate_chart_id == chart['id'])
                    .values(rate_chart_id=heir_id)
                )
                ctx.execute(update(rate_charts).where(rate_charts.c.id == heir_id).values(shared_chart_id=None))
                ctx.execute(
                    update(rate_charts)
                    .where(rate_charts.c.shared_chart_id == chart['id'])
                    .values(shared_chart_id=heir_id)
                )
            else:
                ctx.execute(delete(rate_chart_data).where(rate_chart_data.c.rate_chart_id == chart['id']))
        ctx.execute(delete(rate_chart_download_history).where(
            rate_chart_download_history.c.rate_chart_id == chart['id']
        ))
        ctx.execute(delete(rate_charts).where(rate_charts.c.id == chart['id']))

    @staticmethod
    def assign(ctx, society_id, channel, rows, file_name, uploaded_by, replace=False,
               share_with=(), now=None):
        """Assign a price table to a society channel

        Args:
            ctx: TenantContext
            society_id: Society row ID receiving the chart
            channel: 'COW', 'BUF' or 'MIX'
            rows: Parsed price rows (see parse_rate_chart_csv)
            file_name: Uploaded file name
            uploaded_by: Name of the uploading admin
            replace: Replace an active chart instead of raising a conflict
            share_with: Further society row IDs that get a chart row reading
                this chart's price table
            now: Upload time, defaults to local_now()

        Returns:
            ID of the chart that owns the price rows

        Raises:
            RateChartConflict: an active chart holds the slot and replace is
                False
            ValueError: unknown channel or no rows
        """
        channel = channel.upper()
        if channel not in CHANNELS:
            raise ValueError(f"Invalid channel: {channel}")
        if not rows:
            raise ValueError('No valid rate data to assign')

        now = now or local_now()
        society_ids = [society_id] + [sid for sid in share_with if sid != society_id]

        for sid in society_ids:
            existing = ctx.execute(
                select(rate_charts).where(
                    rate_charts.c.society_id == sid,
                    rate_charts.c.channel == channel
                )
            ).mappings().first()
            if existing is None:
                continue
            if existing['status'] == 1 and not replace:
                raise RateChartConflict(sid, channel, existing['id'])
            RateChart._remove_chart(ctx, existing)

        chart_row = {
            'channel': channel,
            'uploaded_at': now,
            'uploaded_by': uploaded_by,
            'file_name': file_name,
            'record_count': len(rows),
            'status': 1,
        }
        result = ctx.execute(insert(rate_charts).values(society_id=society_id, **chart_row))
        master_id = result.inserted_primary_key[0]

        ctx.execute(
            insert(rate_chart_data),
            [
                {
                    'rate_chart_id': master_id,
                    'clr': row['clr'],
                    'fat': row['fat'],
                    'snf': row['snf'],
                    'rate': row['rate'],
                    'created_at': now,
                }
                for row in rows
            ]
        )

        for sid in society_ids[1:]:
            ctx.execute(insert(rate_charts).values(society_id=sid, shared_chart_id=master_id, **chart_row))

        logger.info(
            f"Rate chart {master_id} assigned: {len(rows)} rows for {channel}, "
            f"{len(society_ids)} societies"
        )
        return master_id
