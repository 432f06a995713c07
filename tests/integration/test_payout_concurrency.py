"""Concurrent payout requests for one provider must never overdraw it"""

import threading
import pytest
from unittest.mock import MagicMock
from homebase_finance.domain.exceptions import InsufficientBalanceError
from homebase_finance.domain.models import ProcessorPayout
from homebase_finance.infrastructure.clients.processor import ProcessorClient
from homebase_finance.infrastructure.database.models import PayoutRequest
from homebase_finance.services.payout_scheduler import PayoutScheduler


@pytest.mark.parametrize("instant_flags", [(False, False), (True, False)], ids=["standard+standard", "instant+standard"])
def test_two_concurrent_payouts_only_one_succeeds(db, session_factory, make_provider, instant_flags):
    make_provider("prov_1", tier="growth", available=50000, instant=True)
    processor = MagicMock(spec=ProcessorClient)
    processor.create_payout.side_effect = lambda provider_id, amount, payout_type, key: ProcessorPayout(
        processor_payout_id=f"po_{key}", status="pending"
    )

    barrier = threading.Barrier(2)
    succeeded, rejected, unexpected = [], [], []

    def worker(instant: bool):
        session = session_factory()
        try:
            scheduler = PayoutScheduler(session, processor)
            barrier.wait()
            if instant:
                payout = scheduler.request_instant_payout("prov_1", 30000)
            else:
                payout = scheduler.request_standard_payout("prov_1", 30000)
            succeeded.append(payout.id)
        except InsufficientBalanceError as e:
            rejected.append(e)
        except Exception as e:
            unexpected.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(flag,)) for flag in instant_flags]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert unexpected == []
    assert len(succeeded) == 1
    assert len(rejected) == 1
    assert processor.create_payout.call_count == 1
    db.expire_all()
    assert db.query(PayoutRequest).count() == 1
