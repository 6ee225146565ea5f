import uuid
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.core.exceptions import AllocationConfigError, ValidationError
from app.models.transaction import (
    RecipientKind,
    TransactionSource,
    TransactionStatus,
    TransactionType,
)
from app.utils.validation import (
    derived_description,
    status_for_source,
    synthesize_income_recipient,
    validate_amount,
    validate_client_source,
    validate_currency,
    validate_description,
    validate_distribution_group,
    validate_percentages,
    validate_recipient,
    validate_standalone,
)


def _income(amount="1000.00"):
    return SimpleNamespace(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        transaction_type=TransactionType.income,
        is_distribution=False,
        amount=Decimal(amount),
    )


def _derived(income, transaction_type, amount):
    return SimpleNamespace(
        id=uuid.uuid4(),
        user_id=income.user_id,
        parent_transaction_id=income.id,
        transaction_type=transaction_type,
        is_distribution=True,
        is_editable=False,
        source=TransactionSource.distribution,
        amount=Decimal(amount),
        recipient_name="Salary",
    )


def _group(income, amounts=("500.00", "300.00", "200.00")):
    types = (TransactionType.needs, TransactionType.wants, TransactionType.savings)
    return [_derived(income, t, a) for t, a in zip(types, amounts)]


class TestDefaults:
    def test_status_for_source(self):
        assert status_for_source(TransactionSource.manual) == TransactionStatus.categorized
        assert status_for_source(TransactionSource.distribution) == TransactionStatus.categorized
        assert status_for_source(TransactionSource.sms) == TransactionStatus.pending
        assert status_for_source(TransactionSource.import_) == TransactionStatus.pending

    def test_income_recipient_synthesized_from_description(self):
        recipient = synthesize_income_recipient("March salary", None)
        assert recipient["name"] == "March salary"
        assert recipient["kind"] == RecipientKind.merchant

    def test_blank_recipient_name_is_replaced(self):
        recipient = synthesize_income_recipient("Bonus", {"name": "  ", "details": "HR"})
        assert recipient["name"] == "Bonus"
        assert recipient["details"] == "HR"

    def test_named_recipient_kept(self):
        given = {"name": "Acme Corp", "kind": RecipientKind.bank}
        assert synthesize_income_recipient("Salary", given) == given

    def test_derived_description(self):
        assert derived_description("Salary", TransactionType.wants) == "Salary - Wants Allocation"


class TestFieldPredicates:
    def test_amount_quantized(self):
        assert validate_amount("12.345") == Decimal("12.34")

    @pytest.mark.parametrize("amount", [None, 0, "-1", "0.001"])
    def test_amount_must_be_positive(self, amount):
        with pytest.raises(ValidationError) as exc:
            validate_amount(amount)
        assert exc.value.field == "amount"

    def test_description(self):
        assert validate_description("  Rent  ") == "Rent"
        with pytest.raises(ValidationError):
            validate_description("   ")

    def test_currency(self):
        assert validate_currency("usd") == "USD"
        with pytest.raises(ValidationError):
            validate_currency("US")
        with pytest.raises(ValidationError):
            validate_currency(None)

    def test_distribution_source_reserved(self):
        assert validate_client_source(TransactionSource.sms) == TransactionSource.sms
        with pytest.raises(ValidationError) as exc:
            validate_client_source(TransactionSource.distribution)
        assert exc.value.field == "source"

    def test_recipient_required_except_for_income(self):
        validate_recipient(TransactionType.income, None)
        validate_recipient(TransactionType.needs, "Landlord")
        with pytest.raises(ValidationError) as exc:
            validate_recipient(TransactionType.wants, " ")
        assert exc.value.field == "recipient.name"

    def test_percentages(self):
        pct = validate_percentages({"needs": "50", "wants": "30", "savings": "20"})
        assert pct.total == Decimal("100")

    def test_percentages_summing_to_90(self):
        with pytest.raises(AllocationConfigError):
            validate_percentages({"needs": 50, "wants": 30, "savings": 10})


class TestStandalone:
    def _expense(self, **overrides):
        fields = dict(
            transaction_type=TransactionType.needs,
            parent_transaction_id=None,
            is_distribution=False,
            is_editable=True,
            amount=Decimal("40.00"),
            recipient_name="Grocer",
        )
        fields.update(overrides)
        return SimpleNamespace(**fields)

    def test_valid(self):
        validate_standalone(self._expense())

    def test_income_not_standalone(self):
        with pytest.raises(ValidationError):
            validate_standalone(self._expense(transaction_type=TransactionType.income))

    def test_linked_row_not_standalone(self):
        with pytest.raises(ValidationError):
            validate_standalone(self._expense(parent_transaction_id=uuid.uuid4()))

    def test_missing_recipient(self):
        with pytest.raises(ValidationError):
            validate_standalone(self._expense(recipient_name=None))


class TestDistributionGroup:
    def test_valid_group(self):
        income = _income()
        validate_distribution_group(income, _group(income))

    def test_zero_share_allowed(self):
        income = _income("100.00")
        validate_distribution_group(income, _group(income, ("100.00", "0.00", "0.00")))

    def test_sum_mismatch(self):
        income = _income()
        with pytest.raises(ValidationError, match="sum"):
            validate_distribution_group(income, _group(income, ("500.00", "300.00", "199.99")))

    def test_missing_member(self):
        income = _income()
        with pytest.raises(ValidationError):
            validate_distribution_group(income, _group(income)[:2])

    def test_duplicate_type(self):
        income = _income()
        group = _group(income)
        group[2].transaction_type = TransactionType.wants
        with pytest.raises(ValidationError):
            validate_distribution_group(income, group)

    def test_editable_member(self):
        income = _income()
        group = _group(income)
        group[0].is_editable = True
        with pytest.raises(ValidationError):
            validate_distribution_group(income, group)

    def test_wrong_parent(self):
        income = _income()
        group = _group(income)
        group[1].parent_transaction_id = uuid.uuid4()
        with pytest.raises(ValidationError):
            validate_distribution_group(income, group)

    def test_ids_must_be_kept(self):
        income = _income()
        group = _group(income)
        previous = [d.id for d in group]
        validate_distribution_group(income, group, previous_ids=previous)

        group[0].id = uuid.uuid4()
        with pytest.raises(ValidationError, match="keep their ids"):
            validate_distribution_group(income, group, previous_ids=previous)

    def test_parent_must_be_income(self):
        income = _income()
        income.transaction_type = TransactionType.needs
        with pytest.raises(ValidationError):
            validate_distribution_group(income, _group(income))
