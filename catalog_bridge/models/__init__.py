# -*- coding: utf-8 -*-
from . import catalog
from . import receipt
from . import webhook_log
