# advanced_export/exports/messages.py

"""User-visible export messages, English and Portuguese."""

MESSAGES = {
    "en": {
        "no_data.title": "No records found",
        "no_data.body": "There is no data to export with the applied filters.",
        "success.title": "Export completed",
        "success.body": "{count} records exported successfully.",
        "queued.title": "Export queued",
        "queued.body": "Your export is being processed in the background. You will be notified when it is ready.",
        "error.title": "Export error",
        "error.body": "An error occurred during processing: {message}",
        "job_complete.title": "Export Complete",
        "job_complete.body": "Your export with {records} records is ready. File: {filename}",
        "job_complete.download": "Download",
        "job_failed.title": "Export Failed",
        "job_failed.body": "The export {filename} failed to process. Please try again.",
        "undefined_title": "Undefined Title",
        "yes": "Yes",
        "no": "No",
    },
    "pt": {
        "no_data.title": "Nenhum registo encontrado",
        "no_data.body": "Não existem dados para exportar com os filtros aplicados.",
        "success.title": "Exportação concluída",
        "success.body": "{count} registos exportados com sucesso.",
        "queued.title": "Exportação em fila",
        "queued.body": "A sua exportação está a ser processada em segundo plano. Será notificado quando estiver pronta.",
        "error.title": "Erro na exportação",
        "error.body": "Ocorreu um erro durante o processamento: {message}",
        "job_complete.title": "Exportação Concluída",
        "job_complete.body": "A sua exportação com {records} registos está pronta. Ficheiro: {filename}",
        "job_complete.download": "Descarregar",
        "job_failed.title": "Exportação Falhou",
        "job_failed.body": "A exportação {filename} falhou. Por favor tente novamente.",
        "undefined_title": "Título Indefinido",
        "yes": "Sim",
        "no": "Não",
    },
}


def get_message(key: str, locale: str = "en", **params) -> str:
    """Look up a message, falling back to English, and format its placeholders."""
    catalog = MESSAGES.get(locale) or MESSAGES["en"]
    template = catalog.get(key) or MESSAGES["en"].get(key, key)
    return template.format(**params) if params else template
