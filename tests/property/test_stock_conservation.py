"""
Property-based tests for stock conservation.

Hypothesis drives random sequences of receipts, deliveries, delivery
edits and delivery deletions against one facility and checks after every
step that:

- every line satisfies 0 <= current <= initial
- initial - removed == current per (variety, size)
- each receipt's fulfilled flag matches its lines
- a rejected delivery leaves the summaries untouched
"""

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from coldstore_kernel.domain.dtos import CallerContext, DeliveryLineRequest, StockLineSpec
from coldstore_kernel.domain.fulfillment import receipt_is_fulfilled
from coldstore_kernel.exceptions import InsufficientStockError
from coldstore_kernel.selectors.stock_selector import StockScope

VARIETIES = ["Pukhraj", "Jyoti"]
SIZES = ["Goli", "Seed", "Ration"]

OPERATIONS = st.sampled_from(["receive", "deliver", "edit", "delete"])


def _assert_ledger_consistent(receipt_ledger, stock_selector, caller, facility_id, receipt_ids):
    assert stock_selector.conservation_discrepancies(StockScope.facility(facility_id)) == []
    for receipt_id in receipt_ids:
        receipt = receipt_ledger.get_receipt(caller, receipt_id)
        for line in receipt.stock_lines:
            assert 0 <= line.current_quantity <= line.initial_quantity
        assert receipt.fulfilled == receipt_is_fulfilled(receipt.stock_lines)


@st.composite
def receipt_lines(draw):
    keys = draw(
        st.lists(
            st.tuples(st.sampled_from(VARIETIES), st.sampled_from(SIZES)),
            min_size=1,
            max_size=4,
            unique=True,
        )
    )
    return [StockLineSpec(v, s, draw(st.integers(min_value=1, max_value=200))) for v, s in keys]


class TestStockConservation:

    @given(data=st.data())
    @settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_random_operation_sequences(
        self,
        data,
        directory,
        receipt_ledger,
        delivery_ledger,
        stock_selector,
        test_actor_id,
        location,
    ):
        facility_id = directory.create_facility("Hypothesis Cold Store", test_actor_id).id
        depositor_id = directory.register_depositor("Hypothesis Farmer", test_actor_id).id
        caller = CallerContext(actor_id=test_actor_id, facility_id=facility_id)
        scope = StockScope.facility(facility_id)

        receipts = []
        deliveries = []

        first = receipt_ledger.create_receipt(
            caller, facility_id, depositor_id, data.draw(receipt_lines()), location
        )
        receipts.append(first.id)

        for operation in data.draw(st.lists(OPERATIONS, min_size=1, max_size=12)):
            if operation == "receive":
                created = receipt_ledger.create_receipt(
                    caller, facility_id, depositor_id, data.draw(receipt_lines()), location
                )
                receipts.append(created.id)

            elif operation in ("deliver", "edit"):
                if operation == "edit" and not deliveries:
                    continue
                receipt = receipt_ledger.get_receipt(caller, data.draw(st.sampled_from(receipts)))
                line = data.draw(st.sampled_from(receipt.stock_lines))
                quantity = data.draw(st.integers(min_value=1, max_value=line.initial_quantity + 20))
                request = [DeliveryLineRequest(receipt.id, line.variety, line.bag_size, quantity)]

                before = stock_selector.summarize(scope)
                try:
                    if operation == "deliver":
                        deliveries.append(
                            delivery_ledger.create_delivery(caller, facility_id, depositor_id, request).id
                        )
                    else:
                        delivery_id = data.draw(st.sampled_from(deliveries))
                        delivery_ledger.edit_delivery(caller, delivery_id, request)
                except InsufficientStockError:
                    assert stock_selector.summarize(scope) == before

            elif operation == "delete" and deliveries:
                delivery_id = data.draw(st.sampled_from(deliveries))
                delivery_ledger.delete_delivery(caller, delivery_id)
                deliveries.remove(delivery_id)

            _assert_ledger_consistent(receipt_ledger, stock_selector, caller, facility_id, receipts)

        for delivery_id in list(deliveries):
            delivery_ledger.delete_delivery(caller, delivery_id)

        for summary in stock_selector.summarize(scope):
            assert summary.current_quantity == summary.initial_quantity
            assert summary.quantity_removed == 0
