"""
Tests for the in_app transaction decoder.
"""

from factories import (
    BASE_EPOCH_MS,
    DAY_MS,
    build_subscription_payload,
    build_transaction_payload,
    without,
)

from receiptguard.models.domain import AnomalyKind, DecodedTransaction, TransactionFailure
from receiptguard.services.transactions import decode_transaction, decode_transactions


class TestDecodeTransaction:
    """Tests for decode_transaction()."""

    def test_valid_entry(self, transaction_payload):
        result = decode_transaction(0, transaction_payload)

        assert isinstance(result, DecodedTransaction)
        assert result.ok is True
        transaction = result.transaction
        assert transaction.index == 0
        assert transaction.product_id == "com.example.app.pro"
        assert transaction.transaction_id == "1000000800000001"
        assert transaction.quantity == 1
        assert transaction.purchase_date.epoch_ms == BASE_EPOCH_MS
        assert transaction.is_trial_period is False
        assert transaction.is_subscription() is False
        assert transaction.is_cancelled() is False
        assert result.anomalies == ()

    def test_subscription_entry(self):
        expires = BASE_EPOCH_MS + 30 * DAY_MS
        result = decode_transaction(2, build_subscription_payload(expires))

        assert result.ok is True
        transaction = result.transaction
        assert transaction.is_subscription() is True
        assert transaction.expires_date.epoch_ms == expires
        assert transaction.web_order_line_item_id == "1000000060000001"
        assert transaction.is_in_intro_offer_period is True

    def test_cancelled_entry(self):
        payload = build_transaction_payload(
            cancellation_date="2021-03-02 07:00:00 Etc/GMT",
            cancellation_date_ms=str(BASE_EPOCH_MS + DAY_MS),
            cancellation_date_pst="2021-03-01 23:00:00 America/Los_Angeles",
            cancellation_reason="1",
        )

        result = decode_transaction(0, payload)

        assert result.transaction.is_cancelled() is True
        assert result.transaction.cancellation_reason == "1"

    def test_numeric_transaction_id_kept_as_text(self):
        result = decode_transaction(0, build_transaction_payload(transaction_id=1000000800000001))

        assert result.transaction.transaction_id == "1000000800000001"

    def test_original_transaction_id_defaults_to_transaction_id(self):
        payload = without(build_transaction_payload(), "original_transaction_id")

        result = decode_transaction(0, payload)

        assert result.transaction.original_transaction_id == "1000000800000001"

    def test_quantity_defaults_to_one(self):
        result = decode_transaction(0, without(build_transaction_payload(), "quantity"))

        assert result.transaction.quantity == 1

    def test_zero_quantity_fails(self):
        result = decode_transaction(1, build_transaction_payload(quantity="0"))

        assert isinstance(result, TransactionFailure)
        assert result.index == 1
        assert result.field_name == "in_app[1].quantity"

    def test_non_mapping_entry_fails(self):
        result = decode_transaction(4, "not an entry")

        assert isinstance(result, TransactionFailure)
        assert result.ok is False
        assert result.index == 4
        assert "str" in result.reason

    def test_missing_product_id_fails(self):
        result = decode_transaction(0, without(build_transaction_payload(), "product_id"))

        assert isinstance(result, TransactionFailure)
        assert result.field_name == "in_app[0].product_id"

    def test_missing_purchase_date_fails(self):
        payload = without(
            build_transaction_payload(), "purchase_date", "purchase_date_ms", "purchase_date_pst"
        )

        result = decode_transaction(0, payload)

        assert isinstance(result, TransactionFailure)
        assert result.field_name == "in_app[0].purchase_date"

    def test_unparseable_timestamp_fails(self):
        payload = build_transaction_payload(
            purchase_date="soon", purchase_date_ms="soon", purchase_date_pst="soon"
        )

        result = decode_transaction(0, payload)

        assert isinstance(result, TransactionFailure)
        assert "No parseable representation" in result.reason

    def test_invalid_flag_fails(self):
        result = decode_transaction(0, build_transaction_payload(is_trial_period="maybe"))

        assert isinstance(result, TransactionFailure)
        assert result.field_name == "in_app[0].is_trial_period"

    def test_temporal_mismatch_is_carried_with_entry_label(self):
        payload = build_transaction_payload(purchase_date="2021-03-01 09:00:00 Etc/GMT")

        result = decode_transaction(3, payload)

        assert result.ok is True
        assert [a.kind for a in result.anomalies] == [AnomalyKind.TEMPORAL_MISMATCH]
        assert result.anomalies[0].field == "in_app[3].purchase_date"

    def test_oversized_epoch_is_malformed_not_fatal(self):
        result = decode_transaction(0, build_transaction_payload(purchase_date_ms="9" * 5000))

        assert result.ok is True
        assert result.transaction.purchase_date.epoch_ms == BASE_EPOCH_MS
        assert [a.kind for a in result.anomalies] == [
            AnomalyKind.MALFORMED_TIMESTAMP_REPRESENTATION
        ]
        assert result.anomalies[0].field == "in_app[0].purchase_date"

    def test_oversized_quantity_fails_entry(self):
        result = decode_transaction(2, build_transaction_payload(quantity="1" * 5000))

        assert isinstance(result, TransactionFailure)
        assert result.field_name == "in_app[2].quantity"

    def test_non_ascii_quantity_fails_entry(self):
        result = decode_transaction(0, build_transaction_payload(quantity="٣"))

        assert isinstance(result, TransactionFailure)
        assert result.field_name == "in_app[0].quantity"


class TestDecodeTransactions:
    """Tests for decode_transactions()."""

    def test_empty(self):
        assert decode_transactions([]) == ()

    def test_order_preserved_and_not_deduplicated(self):
        entry = build_transaction_payload()
        other = build_transaction_payload(product_id="com.example.app.gems")

        results = decode_transactions([entry, other, entry])

        assert [r.index for r in results] == [0, 1, 2]
        assert [r.transaction.product_id for r in results] == [
            "com.example.app.pro",
            "com.example.app.gems",
            "com.example.app.pro",
        ]

    def test_oversized_values_isolated_to_their_entry(self):
        bad = build_transaction_payload(quantity="1" * 5000)

        results = decode_transactions([bad, build_transaction_payload()])

        assert [r.ok for r in results] == [False, True]

    def test_bad_entry_isolated(self):
        bad = build_transaction_payload(
            purchase_date="x", purchase_date_ms="y", purchase_date_pst="z"
        )

        results = decode_transactions(
            [build_transaction_payload(), bad, build_transaction_payload()]
        )

        assert [r.ok for r in results] == [True, False, True]
        assert results[1].index == 1
