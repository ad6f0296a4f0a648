"""Database schema initialization.

Contains the CREATE TABLE / CREATE INDEX statements for the sales
assistant: leads, WhatsApp messages, inventory, knowledge documents,
preferences, webhook audit log and scheduler leases.

Called by database.init_db() at application start.
"""

EMBEDDING_DIMENSIONS = 768


def create_schema(conn, cursor):
    """Create all database tables and indexes.

    Args:
        conn: Database connection (for commit/rollback)
        cursor: Database cursor from get_cursor(conn)
    """
    cursor.execute('CREATE EXTENSION IF NOT EXISTS vector')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS leads (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name TEXT NOT NULL,
            email TEXT UNIQUE,
            phone TEXT UNIQUE,
            type TEXT CHECK (type IN ('autonomo', 'empresa', 'particular', 'pensionista')),
            status TEXT NOT NULL DEFAULT 'nuevo' CHECK (status IN (
                'nuevo', 'contactado', 'activo', 'calificado', 'propuesta', 'evaluando',
                'manager', 'iniciado', 'documentacion', 'comprador', 'descartado',
                'sin_interes', 'inactivo', 'perdido', 'rechazado', 'sin_opciones'
            )),
            budget TEXT,
            expected_purchase_timeframe TEXT CHECK (expected_purchase_timeframe IN (
                'inmediato', 'esta_semana', 'proxima_semana', 'dos_semanas', 'un_mes',
                '1-3 meses', '3-6 meses', '6+ meses', 'indefinido'
            )),
            last_contacted_at TIMESTAMPTZ,
            last_message_at TIMESTAMPTZ,
            next_follow_up_date TIMESTAMPTZ,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    ''')

    # follow_up_count was added after the first deployment
    cursor.execute('''
        DO $$
        BEGIN
            IF NOT EXISTS (SELECT 1 FROM information_schema.columns WHERE table_name = 'leads' AND column_name = 'follow_up_count') THEN
                ALTER TABLE leads ADD COLUMN follow_up_count INTEGER NOT NULL DEFAULT 0;
            END IF;
        END $$;
    ''')

    cursor.execute('''
        CREATE INDEX IF NOT EXISTS idx_leads_follow_up
        ON leads (status, next_follow_up_date)
        WHERE next_follow_up_date IS NOT NULL
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS whatsapp_messages (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            lead_id UUID NOT NULL REFERENCES leads(id) ON DELETE CASCADE,
            whatsapp_message_id TEXT UNIQUE,
            direction TEXT NOT NULL CHECK (direction IN ('inbound', 'outbound')),
            content TEXT NOT NULL,
            phone_number TEXT,
            status TEXT DEFAULT 'sent',
            metadata JSONB,
            whatsapp_timestamp TIMESTAMPTZ,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    ''')
    cursor.execute('''
        CREATE INDEX IF NOT EXISTS idx_whatsapp_messages_lead_created
        ON whatsapp_messages (lead_id, created_at DESC)
    ''')

    cursor.execute(f'''
        CREATE TABLE IF NOT EXISTS car_stock (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            marca TEXT,
            modelo TEXT,
            version TEXT,
            motor TEXT,
            transmision TEXT,
            color TEXT,
            kilometros INTEGER,
            matricula TEXT,
            type TEXT,
            description TEXT,
            image_url TEXT[],
            url TEXT,
            precio_venta NUMERIC(12,2),
            vendido BOOLEAN NOT NULL DEFAULT FALSE,
            embedding vector({EMBEDDING_DIMENSIONS}),
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    ''')

    cursor.execute(f'''
        CREATE TABLE IF NOT EXISTS bot_documents (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            title TEXT NOT NULL,
            category TEXT,
            content TEXT NOT NULL,
            embedding vector({EMBEDDING_DIMENSIONS}),
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS lead_preferences (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            lead_id UUID NOT NULL UNIQUE REFERENCES leads(id) ON DELETE CASCADE,
            preferred_vehicle_type TEXT,
            preferred_brand TEXT,
            preferred_fuel_type TEXT,
            preferred_transmission TEXT,
            max_kilometers INTEGER,
            min_year INTEGER,
            max_year INTEGER,
            needs_financing BOOLEAN,
            min_budget NUMERIC(12,2),
            max_budget NUMERIC(12,2),
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS webhook_logs (
            id SERIAL PRIMARY KEY,
            event_type TEXT NOT NULL,
            payload JSONB,
            status TEXT DEFAULT 'received',
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS scheduler_leases (
            name TEXT PRIMARY KEY,
            holder TEXT NOT NULL,
            acquired_at TIMESTAMPTZ DEFAULT NOW(),
            expires_at TIMESTAMPTZ NOT NULL
        )
    ''')

    conn.commit()
