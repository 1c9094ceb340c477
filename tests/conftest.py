"""Shared test fixtures and helpers for idxprobe tests.

Provides:
- Git helper: git_init()
- CliRunner fixtures: cli_runner, invoke_cli()
- Factory fixture: project_factory for custom file combinations
- Sample Spring Data project: shop_project
- JSON validation helpers: parse_json_output(), assert_json_envelope()
"""

from __future__ import annotations

import json
import os
import subprocess

import pytest
from click.testing import CliRunner

# ===========================================================================
# Git helpers
# ===========================================================================


def git_init(path):
    """Initialize a git repo, add all files, and commit."""
    subprocess.run(["git", "init"], cwd=path, capture_output=True)
    subprocess.run(["git", "config", "user.email", "t@t.com"], cwd=path, capture_output=True)
    subprocess.run(["git", "config", "user.name", "Test"], cwd=path, capture_output=True)
    subprocess.run(["git", "add", "."], cwd=path, capture_output=True)
    subprocess.run(["git", "commit", "-m", "init"], cwd=path, capture_output=True)


# ===========================================================================
# CliRunner helpers
# ===========================================================================


@pytest.fixture
def cli_runner():
    """Provide a Click CliRunner for in-process CLI testing."""
    return CliRunner()


def invoke_cli(runner, args, cwd=None, json_mode=False):
    """Invoke the idxprobe CLI via CliRunner from *cwd*.

    Returns click.testing.Result.  Exceptions that are not ClickExceptions
    propagate so failures show a real traceback.
    """
    from idxprobe.cli import cli

    full_args = []
    if json_mode:
        full_args.append("--json")
    full_args.extend(args)

    old_cwd = os.getcwd()
    try:
        if cwd:
            os.chdir(str(cwd))
        result = runner.invoke(cli, full_args, catch_exceptions=False)
    finally:
        os.chdir(old_cwd)
    return result


# ===========================================================================
# JSON validation helpers
# ===========================================================================


def parse_json_output(result, command=None):
    """Parse JSON from a successful CliRunner result."""
    assert result.exit_code == 0, f"Command {command or '?'} failed (exit {result.exit_code}):\n{result.output}"
    return load_json(result, command)


def load_json(result, command=None):
    """Parse JSON from a CliRunner result regardless of exit code."""
    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        pytest.fail(f"Invalid JSON from {command or '?'}: {e}\nOutput was:\n{result.output[:500]}")


def assert_json_envelope(data, command=None):
    """Validate that a parsed JSON dict follows the envelope contract."""
    assert isinstance(data, dict), f"Expected dict, got {type(data)}"
    assert "command" in data, "Missing 'command' key in envelope"
    assert "version" in data, "Missing 'version' key in envelope"
    assert "summary" in data, "Missing 'summary' key in envelope"
    assert "timestamp" in data.get("_meta", {}), "Missing 'timestamp' in _meta"
    if command:
        assert data["command"] == command, f"Expected command={command}, got {data['command']}"
    assert isinstance(data["summary"], dict)
    assert isinstance(data["summary"].get("verdict"), str)


# ===========================================================================
# Sample sources
# ===========================================================================

USER_ENTITY = """\
package com.example.shop;

import jakarta.persistence.*;

@Entity
@Table(name = "users")
public class User {
    @Id
    @GeneratedValue
    private Long id;

    private String email;

    @Column(name = "display_name")
    private String displayName;

    private String status;
}
"""

ORDER_ENTITY = """\
package com.example.shop;

import jakarta.persistence.*;
import java.time.Instant;
import java.util.List;

@Entity
@Table(name = "orders")
public class Order {
    @Id
    private Long id;

    private String status;

    private Instant createdAt;

    @ManyToOne
    @JoinColumn(name = "customer_id")
    private User customer;

    @OneToMany(mappedBy = "order")
    private List<OrderLine> lines;
}
"""

USER_REPOSITORY = """\
package com.example.shop;

import java.util.List;
import java.util.Optional;
import org.springframework.data.jpa.repository.JpaRepository;

public interface UserRepository extends JpaRepository<User, Long> {
    Optional<User> findByEmail(String email);

    List<User> findByStatus(String status);

    Optional<User> findById(Long id);
}
"""

ORDER_REPOSITORY = """\
package com.example.shop;

import java.time.Instant;
import java.util.List;
import org.springframework.data.jpa.repository.JpaRepository;
import org.springframework.data.jpa.repository.Query;

public interface OrderRepository extends JpaRepository<Order, Long> {
    List<Order> findByStatusAndCreatedAtGreaterThan(String status, Instant since);

    List<Order> findByCustomerId(Long customerId);

    @Query("SELECT o FROM Order o WHERE o.createdAt < :before")
    List<Order> olderThan(Instant before);

    List<Order> findByWarehouse(String warehouse);
}
"""

MIGRATION_V1 = """\
CREATE TABLE users (
    id BIGINT PRIMARY KEY,
    email VARCHAR(255) NOT NULL,
    display_name VARCHAR(255),
    status VARCHAR(32)
);

CREATE TABLE orders (
    id BIGINT PRIMARY KEY,
    status VARCHAR(32),
    created_at TIMESTAMP,
    customer_id BIGINT REFERENCES users(id)
);

CREATE INDEX idx_users_status ON users(status);
"""

MIGRATION_V2 = """\
-- composite index: status leads, created_at does not
CREATE INDEX idx_orders_status_created ON orders (status, created_at);
CREATE INDEX idx_orders_customer ON orders (customer_id);
"""

MIGRATION_V3 = """\
DROP INDEX idx_orders_customer;
"""

SHOP_FILES = {
    "src/main/java/com/example/shop/User.java": USER_ENTITY,
    "src/main/java/com/example/shop/Order.java": ORDER_ENTITY,
    "src/main/java/com/example/shop/UserRepository.java": USER_REPOSITORY,
    "src/main/java/com/example/shop/OrderRepository.java": ORDER_REPOSITORY,
    "src/main/resources/db/migration/V1__init.sql": MIGRATION_V1,
    "src/main/resources/db/migration/V2__order_indexes.sql": MIGRATION_V2,
    "src/main/resources/db/migration/V3__drop_customer_index.sql": MIGRATION_V3,
}


# ===========================================================================
# Project fixtures
# ===========================================================================


@pytest.fixture
def project_factory(tmp_path_factory):
    """Factory fixture for creating custom project layouts.

    Usage:
        def test_something(project_factory):
            proj = project_factory({
                "src/User.java": "...",
                "db/migration/V1__init.sql": "...",
            })

    Pass ``git=True`` to commit the files into a fresh git repository.
    """

    def _create(files, *, git=False):
        proj = tmp_path_factory.mktemp("project")
        for rel_path, content in files.items():
            fp = proj / rel_path
            fp.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                fp.write_bytes(content)
            else:
                fp.write_text(content, encoding="utf-8")
        if git:
            git_init(proj)
        return proj

    return _create


@pytest.fixture
def shop_project(project_factory):
    """Two entities, two repositories and three migrations.

    Expected findings with default settings, in report order:
      orders.created_at  <   (composite index has it second)
      orders.created_at  >
      orders.customer_id =   (its index is dropped in V3)
      users.email        =   (never indexed)
    ``orders.status`` and ``users.status`` are covered; ``findByWarehouse``
    is an unknown field.
    """
    return project_factory(dict(SHOP_FILES))


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Environment overrides must not leak in from the developer's shell."""
    monkeypatch.delenv("IDXPROBE_WORKERS", raising=False)
    monkeypatch.delenv("IDXPROBE_FAIL_THRESHOLD", raising=False)
