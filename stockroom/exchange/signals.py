from django.dispatch import Signal

# Sent when an import job finishes (done or failed). Arguments: job
import_finished = Signal()
