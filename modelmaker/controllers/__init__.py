"""Flask request handlers for accounts, collections, reports, uploads and model downloads."""