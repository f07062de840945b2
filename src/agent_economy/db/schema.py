from __future__ import annotations

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS economy_agents (
    id            TEXT PRIMARY KEY,
    name          TEXT NOT NULL,
    strategy      TEXT NOT NULL DEFAULT '',
    balance       NUMERIC(18, 4) NOT NULL CHECK (balance >= 0),
    total_earned  NUMERIC(18, 4) NOT NULL DEFAULT 0,
    total_spent   NUMERIC(18, 4) NOT NULL DEFAULT 0,
    status        TEXT NOT NULL DEFAULT 'active'
                  CHECK (status IN ('active', 'bankrupt')),
    created_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at    TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS economy_transactions (
    id          BIGSERIAL PRIMARY KEY,
    buyer_id    TEXT NOT NULL REFERENCES economy_agents (id),
    seller_id   TEXT NOT NULL REFERENCES economy_agents (id),
    skill_type  TEXT NOT NULL,
    amount      NUMERIC(18, 4) NOT NULL CHECK (amount >= 0),
    fee         NUMERIC(18, 4) NOT NULL CHECK (fee >= 0),
    epoch       INTEGER NOT NULL CHECK (epoch >= 1),
    narrative   TEXT NOT NULL DEFAULT '',
    created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
    CHECK (buyer_id <> seller_id OR skill_type = 'bankruptcy')
);

CREATE INDEX IF NOT EXISTS economy_transactions_epoch_idx
    ON economy_transactions (epoch);
CREATE INDEX IF NOT EXISTS economy_transactions_buyer_idx
    ON economy_transactions (buyer_id);
CREATE INDEX IF NOT EXISTS economy_transactions_seller_idx
    ON economy_transactions (seller_id);

CREATE TABLE IF NOT EXISTS economy_epochs (
    epoch_number       INTEGER PRIMARY KEY CHECK (epoch_number >= 1),
    total_volume       NUMERIC(18, 4) NOT NULL,
    active_agents      INTEGER NOT NULL,
    bankruptcies       INTEGER NOT NULL,
    top_earner         TEXT,
    event_type         TEXT NOT NULL,
    event_description  TEXT NOT NULL DEFAULT '',
    anchor_hash        TEXT,
    created_at         TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS economy_epoch_snapshots (
    epoch_number  INTEGER NOT NULL REFERENCES economy_epochs (epoch_number),
    agent_id      TEXT NOT NULL REFERENCES economy_agents (id),
    balance       NUMERIC(18, 4) NOT NULL,
    status        TEXT NOT NULL,
    PRIMARY KEY (epoch_number, agent_id)
);
"""
