"""tvbars core: storage, materializer and the ambient stack."""
