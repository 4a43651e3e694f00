"""Tests for collision-free test data generation."""
import os
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor

import pytest

from ui_harness import data_generator as dg
from ui_harness.data_generator import Violation


def _tokens(count):
    return [dg.uniqueness_token() for _ in range(count)]


class TestUniqueness:
    def test_tokens_distinct_within_a_thread(self):
        tokens = _tokens(5000)
        assert len(set(tokens)) == len(tokens)

    def test_tokens_distinct_across_threads(self):
        with ThreadPoolExecutor(max_workers=8) as pool:
            batches = list(pool.map(_tokens, [500] * 8))
        tokens = [token for batch in batches for token in batch]
        assert len(set(tokens)) == 4000

    def test_tokens_distinct_across_processes(self):
        with ProcessPoolExecutor(max_workers=4) as pool:
            batches = list(pool.map(_tokens, [300] * 4))
        tokens = [token for batch in batches for token in batch]
        assert len(set(tokens)) == 1200

    def test_token_fields_are_separated(self):
        first, second = dg.uniqueness_token(), dg.uniqueness_token()
        timestamp, pid, counter, random_part = first.split(dg.TOKEN_SEPARATOR)

        assert int(pid, 36) == os.getpid()
        assert int(second.split(dg.TOKEN_SEPARATOR)[2], 36) == int(counter, 36) + 1
        assert len(random_part) == 4
        assert int(timestamp, 36) > 0

    def test_users_never_share_username_or_email(self):
        with ThreadPoolExecutor(max_workers=8) as pool:
            users = list(pool.map(lambda _: dg.generate_user(), range(400)))
        assert len({u.username for u in users}) == 400
        assert len({u.email for u in users}) == 400

    def test_articles_never_share_title_or_slug(self):
        articles = [dg.generate_article() for _ in range(300)]
        assert len({a.title for a in articles}) == 300
        assert len({a.slug for a in articles}) == 300


class TestValidShapes:
    def test_user_is_well_formed(self):
        user = dg.generate_user()
        assert dg.is_valid_username(user.username)
        assert dg.is_valid_email(user.email)
        assert user.token in user.username
        assert user.as_payload() == {
            "user": {"username": user.username, "email": user.email, "password": user.password}
        }

    def test_password_has_every_character_class(self):
        password = dg.generate_password()
        assert len(password) >= dg.PASSWORD_MIN_LENGTH
        assert any(c.isupper() for c in password)
        assert any(c.islower() for c in password)
        assert any(c.isdigit() for c in password)
        assert any(c in "!@#$%^&*" for c in password)

    def test_article_is_well_formed(self):
        article = dg.generate_article(tags=["one", "two"])
        assert len(article.title) <= dg.TITLE_MAX_LENGTH
        assert article.slug == dg.slugify(article.title)
        assert article.as_payload()["article"]["tagList"] == ["one", "two"]

    def test_long_title_seed_keeps_token(self):
        article = dg.generate_article(title_seed="x" * 500)
        assert len(article.title) <= dg.TITLE_MAX_LENGTH
        assert article.title.endswith(article.token)

    def test_slugify(self):
        assert dg.slugify("Hello,  World! 42") == "hello-world-42"

    def test_settings_update_only_reports_set_fields(self):
        update = dg.generate_settings_update(email="new@example.test")
        assert set(update.changed_fields()) == {"bio", "email"}
        assert update.token in update.bio

    def test_settings_update_rejects_unknown_field(self):
        with pytest.raises(ValueError):
            dg.generate_settings_update(nickname="x")


class TestInvalidShapes:
    def test_invalid_email_is_rejected_by_validator(self):
        for _ in range(50):
            assert not dg.is_valid_email(dg.generate_invalid_email())

    def test_malformed_email_user_breaks_only_email(self):
        record = dg.generate_invalid_user(Violation.MALFORMED_EMAIL)
        assert record.field_name == "email"
        assert not dg.is_valid_email(record.values["email"])
        assert dg.is_valid_username(record.values["username"])
        assert record.values["password"]

    @pytest.mark.parametrize("field_name", ["username", "email", "password"])
    def test_empty_required_user_field(self, field_name):
        record = dg.generate_invalid_user(Violation.EMPTY_REQUIRED, field_name)
        assert record.values[field_name] == ""
        others = {k: v for k, v in record.values.items() if k != field_name}
        assert all(others.values())
        if field_name != "email":
            assert dg.is_valid_email(record.values["email"])

    def test_over_length_username(self):
        record = dg.generate_invalid_user(Violation.OVER_LENGTH)
        assert record.field_name == "username"
        assert len(record.values["username"]) == dg.USERNAME_MAX_LENGTH + 1
        assert dg.is_valid_email(record.values["email"])

    def test_over_length_email_breaks_only_total_length(self):
        record = dg.generate_invalid_user(Violation.OVER_LENGTH, "email")
        email = record.values["email"]
        local, domain = email.split("@")

        assert len(email) == dg.EMAIL_MAX_LENGTH + 1
        assert len(local) <= dg.EMAIL_LOCAL_MAX_LENGTH
        assert all(0 < len(label) <= dg.DOMAIN_LABEL_MAX_LENGTH for label in domain.split("."))
        assert dg.EMAIL_PATTERN.match(email)
        assert not dg.is_valid_email(email)
        assert dg.is_valid_username(record.values["username"])

    def test_over_length_article_title(self):
        record = dg.generate_invalid_article(Violation.OVER_LENGTH)
        assert len(record.values["title"]) == dg.TITLE_MAX_LENGTH + 1
        assert record.values["body"]
        assert record.as_payload()["article"]["title"] == record.values["title"]

    def test_empty_article_body(self):
        record = dg.generate_invalid_article(Violation.EMPTY_REQUIRED, "body")
        assert record.values["body"] == ""
        assert record.values["title"]

    def test_article_cannot_have_malformed_email(self):
        with pytest.raises(ValueError):
            dg.generate_invalid_article(Violation.MALFORMED_EMAIL)

    def test_invalid_records_carry_distinct_tokens(self):
        records = [dg.generate_invalid_user(Violation.EMPTY_REQUIRED) for _ in range(100)]
        assert len({r.token for r in records}) == 100
