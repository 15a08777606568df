"""Session lifecycle reconciliation against a real (SQLite) store."""

import pytest
from sqlalchemy import func, select

from anky.db.models import AnkyToken, ValidAnkyHash, Writer, WritingSession
from anky.indexing.events import (
    AnkyMinted,
    AnkyWritten,
    SessionEnded,
    SessionEndedAbruptly,
    SessionStarted,
)
from anky.indexing.ledger import LedgerReadError
from anky.indexing.reconciler import SessionLifecycleReconciler

OWNER = "0x2222222222222222222222222222222222222222"


def started(fid=7, session_id="s1", start_time=100):
    return SessionStarted(fid=fid, session_id=session_id, start_time=start_time)


def ended(fid=7, is_anky=True, ts=500, block=1234):
    return SessionEnded(fid=fid, is_anky=is_anky, block_timestamp=ts, block_number=block)


def written(fid=7, session_id="s1", ipfs_hash="QmText", at=480):
    return AnkyWritten(fid=fid, session_id=session_id, ipfs_hash=ipfs_hash, written_at=at)


def minted(fid=7, token_id="1", meta="QmMeta", ts=900):
    return AnkyMinted(fid=fid, metadata_ipfs_hash=meta, token_id=token_id, tx_from=OWNER, block_timestamp=ts)


@pytest.fixture
def reconciler(ledger):
    return SessionLifecycleReconciler(ledger)


async def apply(db, reconciler, *events):
    for event in events:
        await reconciler.handle(db, event)
    await db.commit()


async def count(db, model) -> int:
    return await db.scalar(select(func.count()).select_from(model))


class TestSessionStarted:
    """SessionStarted opens a session and counts it once."""

    async def test_creates_writer_and_session(self, db_session, reconciler):
        await apply(db_session, reconciler, started())

        writer = await db_session.get(Writer, 7)
        session = await db_session.get(WritingSession, "s1")
        assert writer.total_sessions == 1
        assert writer.current_session_id == "s1"
        assert session.start_time == 100
        assert session.is_anky is False
        assert session.is_minted is False

    async def test_idempotent(self, db_session, reconciler):
        """Delivering the same start twice counts it once and leaves the session unchanged."""
        await apply(db_session, reconciler, started())
        before = await db_session.get(WritingSession, "s1")
        snapshot = (before.fid, before.start_time, before.end_time, before.ipfs_hash, before.is_anky)

        await apply(db_session, reconciler, started())

        writer = await db_session.get(Writer, 7)
        after = await db_session.get(WritingSession, "s1")
        assert writer.total_sessions == 1
        assert (after.fid, after.start_time, after.end_time, after.ipfs_hash, after.is_anky) == snapshot

    async def test_second_session_counts(self, db_session, reconciler):
        await apply(db_session, reconciler, started(), started(session_id="s2", start_time=200))
        writer = await db_session.get(Writer, 7)
        assert writer.total_sessions == 2
        assert writer.current_session_id == "s2"

    async def test_late_start_fills_unknown_start(self, db_session, reconciler):
        """A start observed after AnkyWritten fills start_time and keeps is_anky."""
        await apply(db_session, reconciler, written(), started())

        session = await db_session.get(WritingSession, "s1")
        assert session.start_time == 100
        assert session.is_anky is True
        assert (await db_session.get(Writer, 7)).total_sessions == 1

    async def test_late_start_of_closed_session_not_current(self, db_session, reconciler):
        await apply(db_session, reconciler, SessionEndedAbruptly(fid=7, session_id="s1", block_timestamp=150))
        await apply(db_session, reconciler, started())

        writer = await db_session.get(Writer, 7)
        assert writer.current_session_id is None
        assert writer.total_sessions == 1


class TestSessionEndedAbruptly:
    """Abrupt end closes the session without content."""

    async def test_closes_current_session(self, db_session, reconciler):
        await apply(db_session, reconciler, started(), SessionEndedAbruptly(fid=7, session_id="s1", block_timestamp=300))

        session = await db_session.get(WritingSession, "s1")
        writer = await db_session.get(Writer, 7)
        assert session.end_time == 300
        assert writer.current_session_id is None

    async def test_unknown_session_created_with_unknown_start(self, db_session, reconciler):
        await apply(db_session, reconciler, SessionEndedAbruptly(fid=7, session_id="ghost", block_timestamp=300))

        session = await db_session.get(WritingSession, "ghost")
        assert session.start_time is None
        assert session.end_time == 300
        assert (await db_session.get(Writer, 7)).total_sessions == 0

    async def test_other_session_stays_current(self, db_session, reconciler):
        await apply(
            db_session, reconciler,
            started(session_id="s2", start_time=200),
            SessionEndedAbruptly(fid=7, session_id="s1", block_timestamp=300),
        )
        assert (await db_session.get(Writer, 7)).current_session_id == "s2"

    async def test_idempotent(self, db_session, reconciler):
        """A redelivered abrupt end leaves the session and writer as they were."""
        abrupt = SessionEndedAbruptly(fid=7, session_id="s1", block_timestamp=300)
        await apply(db_session, reconciler, started(), abrupt)
        before = await db_session.get(WritingSession, "s1")
        snapshot = (before.start_time, before.end_time, before.ipfs_hash, before.is_anky, before.is_minted)

        await apply(db_session, reconciler, abrupt)

        after = await db_session.get(WritingSession, "s1")
        writer = await db_session.get(Writer, 7)
        assert (after.start_time, after.end_time, after.ipfs_hash, after.is_anky, after.is_minted) == snapshot
        assert writer.current_session_id is None
        assert writer.total_sessions == 1
        assert await count(db_session, WritingSession) == 1


class TestSessionEnded:
    """Normal end takes the content hash from the ledger."""

    async def test_records_ledger_hash(self, db_session, reconciler, ledger):
        ledger.complete(7, "QmOld")
        ledger.complete(7, "QmNew")
        await apply(db_session, reconciler, started(), ended())

        session = await db_session.get(WritingSession, "s1")
        writer = await db_session.get(Writer, 7)
        assert session.ipfs_hash == "QmNew"
        assert session.end_time == 500
        assert session.is_anky is True
        assert writer.current_session_id is None
        assert ("count", 7, 1234) in ledger.calls

    async def test_without_open_session_is_skipped(self, db_session, reconciler, ledger):
        ledger.complete(7, "QmNew")
        await apply(db_session, reconciler, ended())

        assert await count(db_session, WritingSession) == 0
        assert ledger.calls == []

    async def test_is_anky_never_regresses(self, db_session, reconciler, ledger):
        ledger.complete(7, "QmText")
        await apply(db_session, reconciler, started(), written(), ended(is_anky=False))

        session = await db_session.get(WritingSession, "s1")
        assert session.is_anky is True

    async def test_keeps_written_hash(self, db_session, reconciler, ledger):
        ledger.complete(7, "QmLedger")
        await apply(db_session, reconciler, started(), written(ipfs_hash="QmWritten"), ended())

        session = await db_session.get(WritingSession, "s1")
        assert session.ipfs_hash == "QmWritten"

    async def test_idempotent(self, db_session, reconciler, ledger):
        """A redelivered end finds no open session: no ledger read, no change."""
        ledger.complete(7, "QmNew")
        await apply(db_session, reconciler, started(), ended())
        before = await db_session.get(WritingSession, "s1")
        snapshot = (before.start_time, before.end_time, before.ipfs_hash, before.is_anky)
        calls = list(ledger.calls)

        await apply(db_session, reconciler, ended())

        after = await db_session.get(WritingSession, "s1")
        writer = await db_session.get(Writer, 7)
        assert (after.start_time, after.end_time, after.ipfs_hash, after.is_anky) == snapshot
        assert writer.current_session_id is None
        assert ledger.calls == calls

    async def test_ledger_failure_propagates(self, db_session, reconciler, ledger):
        ledger.fail = True
        await apply(db_session, reconciler, started())

        with pytest.raises(LedgerReadError):
            await reconciler.handle(db_session, ended())
        await db_session.rollback()

        writer = await db_session.get(Writer, 7)
        session = await db_session.get(WritingSession, "s1")
        assert writer.current_session_id == "s1"
        assert session.end_time is None

    async def test_empty_ledger_fails(self, db_session, reconciler):
        """A completed count of zero has no entry to read."""
        await apply(db_session, reconciler, started())
        with pytest.raises(LedgerReadError):
            await reconciler.handle(db_session, ended())
        await db_session.rollback()


class TestAnkyWritten:
    """AnkyWritten attests content and marks the session as an Anky."""

    async def test_records_hash_and_flag(self, db_session, reconciler):
        await apply(db_session, reconciler, started(), written())

        session = await db_session.get(WritingSession, "s1")
        assert session.ipfs_hash == "QmText"
        assert session.is_anky is True
        valid = await db_session.get(ValidAnkyHash, (7, "QmText"))
        assert valid.created_at == 480

    async def test_before_start(self, db_session, reconciler):
        await apply(db_session, reconciler, written())

        session = await db_session.get(WritingSession, "s1")
        assert session.start_time is None
        assert session.is_anky is True
        assert await db_session.get(Writer, 7) is not None

    async def test_idempotent(self, db_session, reconciler):
        await apply(db_session, reconciler, written(), written(at=999))

        assert await count(db_session, ValidAnkyHash) == 1
        assert (await db_session.get(ValidAnkyHash, (7, "QmText"))).created_at == 480


class TestAnkyMinted:
    """Minting binds one token to the latest unminted Anky session."""

    async def test_mint_race_creates_nothing(self, db_session, reconciler):
        """No eligible session: no token, no error."""
        await apply(db_session, reconciler, started(), minted())

        assert await count(db_session, AnkyToken) == 0
        assert (await db_session.get(WritingSession, "s1")).is_minted is False

    async def test_mint_for_unknown_writer(self, db_session, reconciler):
        await apply(db_session, reconciler, minted(fid=99))
        assert await count(db_session, AnkyToken) == 0

    async def test_mint_invariant(self, db_session, reconciler):
        await apply(db_session, reconciler, started(), written(), minted(token_id="42"))

        session = await db_session.get(WritingSession, "s1")
        tokens = (await db_session.execute(select(AnkyToken).where(AnkyToken.session_id == "s1"))).scalars().all()
        assert session.is_minted is True
        assert len(tokens) == 1
        token = tokens[0]
        assert token.id == "42"
        assert token.owner == OWNER
        assert token.writing_ipfs_hash == "QmText"
        assert token.metadata_ipfs_hash == "QmMeta"
        assert token.minted_at == 900

        bad = await db_session.scalar(
            select(func.count()).select_from(WritingSession).where(
                WritingSession.is_minted.is_(True), WritingSession.is_anky.is_(False)
            )
        )
        assert bad == 0

    async def test_redelivered_mint_is_noop(self, db_session, reconciler):
        await apply(
            db_session, reconciler,
            started(), written(),
            started(session_id="s2", start_time=200), written(session_id="s2", ipfs_hash="QmTwo"),
            minted(token_id="1"),
            minted(token_id="1"),
        )
        assert await count(db_session, AnkyToken) == 1
        minted_flags = (await db_session.execute(select(WritingSession.is_minted))).scalars().all()
        assert sorted(minted_flags) == [False, True]

    async def test_picks_latest_ended_session(self, db_session, reconciler, ledger):
        ledger.complete(7, "QmA")
        ledger.complete(7, "QmB")
        await apply(
            db_session, reconciler,
            started(session_id="a", start_time=100), written(session_id="a", ipfs_hash="QmA"),
            ended(ts=150),
            started(session_id="b", start_time=200), written(session_id="b", ipfs_hash="QmB"),
            ended(ts=250),
            minted(token_id="5"),
        )
        token = await db_session.get(AnkyToken, "5")
        assert token.session_id == "b"
        assert token.writing_ipfs_hash == "QmB"

    async def test_two_mints_two_sessions(self, db_session, reconciler):
        await apply(
            db_session, reconciler,
            started(session_id="a"), written(session_id="a", ipfs_hash="QmA"),
            started(session_id="b", start_time=200), written(session_id="b", ipfs_hash="QmB"),
            minted(token_id="1"),
            minted(token_id="2"),
        )
        session_ids = (await db_session.execute(select(AnkyToken.session_id))).scalars().all()
        assert sorted(session_ids) == ["a", "b"]
