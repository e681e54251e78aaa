"""Database schema for payments, claims and reconciliation records.

Money columns hold integer cents. Rows are soft-deleted through ``deleted_at``.
"""

from __future__ import annotations


INIT_SCHEMA = """
-- Payers
CREATE TABLE IF NOT EXISTS payers (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    payer_identifier TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    deleted_at TIMESTAMP
);

-- Claims (owned by the claims subsystem)
CREATE TABLE IF NOT EXISTS claims (
    id TEXT PRIMARY KEY,
    claim_number TEXT NOT NULL UNIQUE,
    payer_id TEXT NOT NULL,
    program_id TEXT,
    client_name TEXT,
    service_start_date DATE NOT NULL,
    service_end_date DATE,
    submission_date DATE,
    adjudication_date DATE,
    total_amount INTEGER NOT NULL,
    claim_status TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP,
    updated_by TEXT,
    deleted_at TIMESTAMP,
    FOREIGN KEY (payer_id) REFERENCES payers(id)
);

-- Claim status audit trail
CREATE TABLE IF NOT EXISTS claim_status_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    claim_id TEXT NOT NULL,
    previous_status TEXT,
    new_status TEXT NOT NULL,
    reason TEXT,
    changed_by TEXT,
    changed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (claim_id) REFERENCES claims(id)
);

-- Payments
CREATE TABLE IF NOT EXISTS payments (
    id TEXT PRIMARY KEY,
    payer_id TEXT NOT NULL,
    payment_date DATE NOT NULL,
    payment_amount INTEGER NOT NULL CHECK (payment_amount >= 0),
    payment_method TEXT NOT NULL,
    reference_number TEXT,
    check_number TEXT,
    remittance_id TEXT,
    reconciliation_status TEXT NOT NULL DEFAULT 'unreconciled',
    notes TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    version INTEGER NOT NULL DEFAULT 1,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    created_by TEXT,
    updated_at TIMESTAMP,
    updated_by TEXT,
    deleted_at TIMESTAMP,
    FOREIGN KEY (payer_id) REFERENCES payers(id)
);

-- Portion of a payment applied to a claim
CREATE TABLE IF NOT EXISTS claim_payments (
    id TEXT PRIMARY KEY,
    payment_id TEXT NOT NULL,
    claim_id TEXT NOT NULL,
    paid_amount INTEGER NOT NULL CHECK (paid_amount >= 0),
    status TEXT NOT NULL DEFAULT 'active',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    created_by TEXT,
    updated_at TIMESTAMP,
    updated_by TEXT,
    deleted_at TIMESTAMP,
    FOREIGN KEY (payment_id) REFERENCES payments(id),
    FOREIGN KEY (claim_id) REFERENCES claims(id)
);

-- Adjustments; claim_payment_id is NULL for denials recorded against the claim only
CREATE TABLE IF NOT EXISTS payment_adjustments (
    id TEXT PRIMARY KEY,
    claim_payment_id TEXT,
    claim_id TEXT NOT NULL,
    adjustment_type TEXT NOT NULL,
    adjustment_code TEXT NOT NULL,
    adjustment_amount INTEGER NOT NULL CHECK (adjustment_amount > 0),
    description TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    created_by TEXT,
    deleted_at TIMESTAMP,
    FOREIGN KEY (claim_payment_id) REFERENCES claim_payments(id),
    FOREIGN KEY (claim_id) REFERENCES claims(id)
);

-- Remittance advice header, one per imported payment
CREATE TABLE IF NOT EXISTS remittance_info (
    id TEXT PRIMARY KEY,
    payment_id TEXT NOT NULL UNIQUE,
    remittance_number TEXT,
    payer_identifier TEXT,
    file_type TEXT NOT NULL,
    file_name TEXT,
    total_details INTEGER NOT NULL DEFAULT 0,
    matched_details INTEGER NOT NULL DEFAULT 0,
    processed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    created_by TEXT,
    deleted_at TIMESTAMP,
    FOREIGN KEY (payment_id) REFERENCES payments(id)
);

-- Remittance claim lines; claim_id is NULL when no claim matched
CREATE TABLE IF NOT EXISTS remittance_details (
    id TEXT PRIMARY KEY,
    remittance_id TEXT NOT NULL,
    claim_id TEXT,
    claim_number TEXT NOT NULL,
    service_date DATE,
    billed_amount INTEGER NOT NULL DEFAULT 0,
    paid_amount INTEGER NOT NULL DEFAULT 0,
    adjustment_amount INTEGER NOT NULL DEFAULT 0,
    adjustment_codes TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    deleted_at TIMESTAMP,
    FOREIGN KEY (remittance_id) REFERENCES remittance_info(id),
    FOREIGN KEY (claim_id) REFERENCES claims(id)
);

-- Reconciliation history
CREATE TABLE IF NOT EXISTS reconciliation_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    payment_id TEXT NOT NULL,
    action TEXT NOT NULL,
    previous_status TEXT,
    new_status TEXT NOT NULL,
    total_applied INTEGER NOT NULL DEFAULT 0,
    user_id TEXT,
    details TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (payment_id) REFERENCES payments(id)
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_claims_payer_status ON claims(payer_id, claim_status);
CREATE INDEX IF NOT EXISTS idx_claims_service_date ON claims(service_start_date);
CREATE INDEX IF NOT EXISTS idx_payments_payer ON payments(payer_id);
CREATE INDEX IF NOT EXISTS idx_payments_status ON payments(reconciliation_status);
CREATE INDEX IF NOT EXISTS idx_claim_payments_payment ON claim_payments(payment_id);
CREATE INDEX IF NOT EXISTS idx_claim_payments_claim ON claim_payments(claim_id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_claim_payments_live
    ON claim_payments(payment_id, claim_id) WHERE deleted_at IS NULL;
CREATE INDEX IF NOT EXISTS idx_adjustments_claim_payment ON payment_adjustments(claim_payment_id);
CREATE INDEX IF NOT EXISTS idx_adjustments_claim ON payment_adjustments(claim_id);
CREATE INDEX IF NOT EXISTS idx_remittance_details_remittance ON remittance_details(remittance_id);
CREATE INDEX IF NOT EXISTS idx_events_payment ON reconciliation_events(payment_id);
"""
