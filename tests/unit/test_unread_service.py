from __future__ import annotations

import asyncio
import random
import uuid

import pytest

from marketplace_chat.application.exceptions import ForbiddenError, NotFoundError
from marketplace_chat.domain.services.unread import count_unread
from marketplace_chat.services import message_service, unread_service
from tests.conftest import BUYER_ID, SUPPLIER_ID, FakeUoW, make_conversation, make_message


def _assert_counters_match_receipts(uow: FakeUoW) -> None:
    for conv in uow.conversations._store.values():
        msgs = uow.messages.in_conversation(conv.id)
        assert conv.unread_count_buyer == count_unread(msgs, conv.buyer_id)
        assert conv.unread_count_counterpart == count_unread(msgs, conv.counterpart_id)


@pytest.mark.asyncio
async def test_supplier_messages_then_buyer_reads(buyer_principal, supplier_principal):
    uow = FakeUoW()
    conv = uow.add_conversation(make_conversation())

    for i in range(3):
        await message_service.send_message(conv.id, supplier_principal, f"offer {i}", None, uow)
    assert uow.conversations._store[conv.id].unread_count_buyer == 3

    refreshed = await unread_service.mark_read(conv.id, buyer_principal, uow)

    assert refreshed.unread_count_buyer == 0
    assert refreshed.unread_count_counterpart == 0
    assert all(BUYER_ID in m.read_by for m in uow.messages._messages)
    assert conv.id in uow.conversations.locked


@pytest.mark.asyncio
async def test_mark_read_leaves_own_messages_and_other_side(buyer_principal, supplier_principal):
    uow = FakeUoW()
    conv = uow.add_conversation(make_conversation())
    await message_service.send_message(conv.id, buyer_principal, "question", None, uow)
    await message_service.send_message(conv.id, supplier_principal, "answer", None, uow)

    refreshed = await unread_service.mark_read(conv.id, buyer_principal, uow)

    own = next(m for m in uow.messages._messages if m.sender_id == BUYER_ID)
    assert BUYER_ID not in own.read_by
    assert refreshed.unread_count_buyer == 0
    assert refreshed.unread_count_counterpart == 1


@pytest.mark.asyncio
async def test_mark_read_emits_event_only_when_receipts_added(buyer_principal, supplier_principal):
    uow = FakeUoW()
    conv = uow.add_conversation(make_conversation())
    await message_service.send_message(conv.id, supplier_principal, "hi", None, uow)
    uow.outbox._records.clear()

    await unread_service.mark_read(conv.id, buyer_principal, uow)
    await unread_service.mark_read(conv.id, buyer_principal, uow)

    assert [r["event_type"] for r in uow.outbox._records] == ["chat.conversation_read"]
    assert uow.outbox._records[0]["payload"]["receipts"] == 1


@pytest.mark.asyncio
async def test_mark_read_unknown_conversation(buyer_principal):
    with pytest.raises(NotFoundError):
        await unread_service.mark_read(uuid.uuid4(), buyer_principal, FakeUoW())


@pytest.mark.asyncio
async def test_unread_total_sums_own_side(buyer_principal, supplier_principal, admin_principal):
    uow = FakeUoW()
    with_supplier = uow.add_conversation(make_conversation())
    with_support = uow.add_conversation(
        make_conversation(counterpart_id="admin", counterpart_role="admin")
    )
    other_buyer = uow.add_conversation(make_conversation(buyer_id="buyer-2"))
    await message_service.send_message(with_supplier.id, supplier_principal, "a", None, uow)
    await message_service.send_message(with_supplier.id, supplier_principal, "b", None, uow)
    await message_service.send_message(other_buyer.id, supplier_principal, "c", None, uow)
    uow.messages._messages.append(
        make_message(conversation_id=with_support.id, sender_id="admin", sender_role="admin")
    )
    await unread_service.reconcile(with_support.id, admin_principal, uow)

    assert await unread_service.get_unread_total(buyer_principal, uow) == 3
    assert await unread_service.get_unread_total(supplier_principal, uow) == 0


@pytest.mark.asyncio
async def test_reconcile_repairs_drifted_counters(admin_principal):
    uow = FakeUoW()
    conv = uow.add_conversation(make_conversation())
    uow.messages._messages.append(make_message(conversation_id=conv.id, sender_id=SUPPLIER_ID))

    refreshed = await unread_service.reconcile(conv.id, admin_principal, uow)

    assert refreshed.unread_count_buyer == 1
    assert refreshed.unread_count_counterpart == 0
    assert conv.id in uow.conversations.locked
    assert uow._committed


@pytest.mark.asyncio
async def test_reconcile_unknown_conversation(admin_principal):
    with pytest.raises(NotFoundError):
        await unread_service.reconcile(uuid.uuid4(), admin_principal, FakeUoW())


@pytest.mark.asyncio
async def test_reconcile_is_admin_only(buyer_principal):
    uow = FakeUoW()
    conv = uow.add_conversation(make_conversation())
    with pytest.raises(ForbiddenError):
        await unread_service.reconcile(conv.id, buyer_principal, uow)


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", range(8))
async def test_counters_hold_for_any_interleaving(seed, buyer_principal, supplier_principal):
    rng = random.Random(seed)
    uow = FakeUoW()
    convs = [uow.add_conversation(make_conversation(product_id=f"p{i}")) for i in range(2)]
    principals = [buyer_principal, supplier_principal]

    async def actor(n: int) -> None:
        for _ in range(n):
            conv = rng.choice(convs)
            who = rng.choice(principals)
            if rng.random() < 0.6:
                await message_service.send_message(conv.id, who, "msg", None, uow)
            else:
                await unread_service.mark_read(conv.id, who, uow)
            await asyncio.sleep(0)
            _assert_counters_match_receipts(uow)

    await asyncio.gather(*(actor(rng.randint(5, 15)) for _ in range(4)))

    _assert_counters_match_receipts(uow)
