# autowebinar_app/wsgi.py
# -*- coding: utf-8 -*-
from . import create_app

app = create_app()
