class PrinterError(Exception):
    # stage names the workflow step that failed, e.g. "delete: confirm"
    def __init__(self, message, stage=None):
        super().__init__(message)
        self.stage = stage

    def __str__(self):
        message = super().__str__()
        if self.stage:
            return f"{self.stage}: {message}"
        return message


class TransportError(PrinterError):
    def __init__(self, message, stage=None, status=None):
        super().__init__(message, stage=stage)
        self.status = status


class DiscoveryError(PrinterError):
    pass


class CSRFTokenError(DiscoveryError):
    pass


class ValidationError(PrinterError):
    pass


class VerificationError(PrinterError):
    pass


class AmbiguousUploadError(VerificationError):
    def __init__(self, message, new_ids, stage=None):
        super().__init__(message, stage=stage)
        self.new_ids = list(new_ids)


class AuthenticationError(PrinterError):
    pass


class CertificateConversionError(PrinterError):
    pass
