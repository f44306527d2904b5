"""
Batch Generation Script Tests

Tests verify:
1. Argument defaults match the monthly job (verified, consented, fixed)
2. A run against the platform tables yields a READY batch
3. A conflicting month exits non-zero
"""
from bureau_export.models.db_models import BatchStatus, ReportingBatchDB
from scripts.generate_batch import generate, parse_args


class TestGenerateScript:

    def test_defaults(self):
        args = parse_args([])
        assert args.month is None
        assert args.include_unverified is False
        assert args.all_tenants is False
        assert args.format == "fixed"

    def test_empty_month_is_ready(self, db, settings, capsys):
        assert generate(db, settings, parse_args(["--month", "2023-11"])) == 0

        batch = db.query(ReportingBatchDB).one()
        assert batch.status == BatchStatus.READY
        assert batch.created_by == "SYSTEM_CLI"
        assert "0 records" in capsys.readouterr().out

    def test_conflict_exits_non_zero(self, db, settings, capsys):
        args = parse_args(["--month", "2023-11", "--format", "csv"])
        assert generate(db, settings, args) == 0
        assert generate(db, settings, args) == 1
        assert "already has batch" in capsys.readouterr().out

    def test_invalid_month_exits_non_zero(self, db, settings):
        assert generate(db, settings, parse_args(["--month", "2023-00"])) == 1
