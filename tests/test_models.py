import pytest
from pydantic import ValidationError

from productpal.models import Comparison, ComparisonProduct, Message, Product

TABLE = Comparison(attributes=["Price"], products=[ComparisonProduct(name="A", values=["Free"])])


class TestUserMessage:
    def test_plain_user_message(self):
        message = Message.user("hello")
        assert message.role == "user"
        assert message.error is False
        assert message.products is None

    def test_rejects_error_flag(self):
        with pytest.raises(ValidationError):
            Message(role="user", content="x", error=True)

    def test_rejects_products(self):
        with pytest.raises(ValidationError):
            Message(role="user", content="x", products=[Product(name="A")])

    def test_rejects_comparison(self):
        with pytest.raises(ValidationError):
            Message(role="user", content="x", comparison=TABLE)


class TestErrorMessage:
    def test_failure_builder(self):
        message = Message.failure("Something went wrong. Please try again.")
        assert message.role == "assistant"
        assert message.error is True

    def test_rejects_comparison(self):
        with pytest.raises(ValidationError):
            Message(role="assistant", content="x", error=True, comparison=TABLE)

    def test_rejects_products(self):
        with pytest.raises(ValidationError):
            Message(role="assistant", content="x", error=True, products=[Product(name="A")])


def test_assistant_may_carry_products_and_comparison():
    message = Message.assistant("Try A", products=[Product(name="A")], comparison=TABLE)
    assert message.products[0].name == "A"
    assert message.comparison.attributes == ["Price"]


def test_product_name_required():
    with pytest.raises(ValidationError):
        Product(name="")
