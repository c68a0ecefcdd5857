SCHEMA_SQL = r"""
-- Catalog
CREATE TABLE IF NOT EXISTS products (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL,
  name_local TEXT,
  unit TEXT NOT NULL DEFAULT 'kg',           -- kg / pc
  cost_per_unit REAL NOT NULL DEFAULT 0,     -- farmer (base) cost per unit
  shelf_life_days INTEGER DEFAULT 7,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS clients (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL,
  name_local TEXT,
  type TEXT NOT NULL DEFAULT 'restaurant',   -- restaurant / supermarket
  phone TEXT,
  credit_days INTEGER DEFAULT 30,
  created_at TEXT NOT NULL
);

-- Client selling prices (per base unit, or per pack for supermarkets)
CREATE TABLE IF NOT EXISTS client_pricing (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  client_id INTEGER NOT NULL,
  product_id INTEGER NOT NULL,
  selling_price REAL NOT NULL,
  last_updated TEXT NOT NULL,
  UNIQUE (client_id, product_id),
  FOREIGN KEY (client_id) REFERENCES clients(id) ON DELETE CASCADE,
  FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
);

-- Append-only price log
CREATE TABLE IF NOT EXISTS client_pricing_history (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  client_id INTEGER NOT NULL,
  product_id INTEGER NOT NULL,
  selling_price REAL NOT NULL,
  changed_at TEXT NOT NULL
);

-- Orders (totals are derived at save time and stored)
CREATE TABLE IF NOT EXISTS orders (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  client_id INTEGER NOT NULL,
  order_date TEXT NOT NULL,                  -- ISO date
  delivery_date TEXT NOT NULL,               -- ISO date, >= order_date
  transport_cost REAL NOT NULL DEFAULT 0,
  packaging_cost REAL NOT NULL DEFAULT 0,
  total_revenue REAL NOT NULL DEFAULT 0,
  total_cost REAL NOT NULL DEFAULT 0,
  net_profit REAL NOT NULL DEFAULT 0,
  margin_percentage REAL NOT NULL DEFAULT 0,
  margin_zone TEXT NOT NULL DEFAULT 'red',   -- green / yellow / red
  created_at TEXT NOT NULL,
  FOREIGN KEY (client_id) REFERENCES clients(id)
);

-- Line items snapshot price/cost at order time
CREATE TABLE IF NOT EXISTS order_items (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  order_id INTEGER NOT NULL,
  product_id INTEGER NOT NULL,
  quantity REAL NOT NULL DEFAULT 0,          -- total base units (kg or pcs)
  selling_price_used REAL NOT NULL DEFAULT 0,
  cost_used REAL NOT NULL DEFAULT 0,
  total_revenue REAL NOT NULL DEFAULT 0,
  total_cost REAL NOT NULL DEFAULT 0,
  FOREIGN KEY (order_id) REFERENCES orders(id),
  FOREIGN KEY (product_id) REFERENCES products(id)
);

-- Receivables (one per order)
CREATE TABLE IF NOT EXISTS payments (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  order_id INTEGER NOT NULL UNIQUE,
  amount REAL NOT NULL DEFAULT 0,
  invoice_date TEXT NOT NULL,
  due_date TEXT NOT NULL,
  status TEXT NOT NULL DEFAULT 'unpaid',     -- unpaid / paid
  paid_date TEXT,
  created_at TEXT NOT NULL,
  FOREIGN KEY (order_id) REFERENCES orders(id)
);

-- Harvest batches and waste
CREATE TABLE IF NOT EXISTS inventory_batches (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  product_id INTEGER NOT NULL,
  harvest_date TEXT NOT NULL,
  harvested_qty REAL NOT NULL DEFAULT 0,
  damaged_qty REAL NOT NULL DEFAULT 0,
  expired_qty REAL NOT NULL DEFAULT 0,
  sold_qty REAL NOT NULL DEFAULT 0,
  packaging_cost_per_unit REAL NOT NULL DEFAULT 0,
  waste_percentage REAL NOT NULL DEFAULT 0,  -- derived
  waste_value REAL NOT NULL DEFAULT 0,       -- derived
  created_at TEXT NOT NULL,
  FOREIGN KEY (product_id) REFERENCES products(id)
);

-- Scoped JSON settings (pricing settings, margins, variants, ledger, links)
CREATE TABLE IF NOT EXISTS kv_settings (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
"""
