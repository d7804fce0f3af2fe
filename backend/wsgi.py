# backend/wsgi.py
from voucherdesk import create_app

app = create_app()
