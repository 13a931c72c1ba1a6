import unittest
from datetime import timedelta
from unittest import mock

import requests
from firebase_admin import auth as firebase_auth
from firebase_admin import exceptions as firebase_exceptions
from google.api_core import exceptions as gcloud_exceptions

from jobboard.errors import AuthSyncFailed, Conflict, NotFound, StorageFailed, Unauthenticated, Unauthorized
from jobboard.identity import FirebaseIdentityProvider, parse_bearer
from jobboard.storage import BlobNotFound, FirebaseStorageClient


def toolkit_response(ok=True, payload=None, status_code=200):
    response = mock.Mock(ok=ok, status_code=status_code, text="")
    response.json.return_value = payload or {}
    return response


class ParseBearerTests(unittest.TestCase):
    def test_parse_bearer(self):
        self.assertEqual(parse_bearer("Bearer abc.def"), "abc.def")
        self.assertEqual(parse_bearer("bearer   abc "), "abc")
        for header in (None, "", "Bearer", "Bearer  ", "Basic abc", "abc"):
            with self.assertRaises(Unauthenticated):
                parse_bearer(header)


class FirebaseIdentityProviderTests(unittest.TestCase):
    def setUp(self):
        self.session = mock.Mock(spec=requests.Session)
        self.app = object()
        self.provider = FirebaseIdentityProvider(
            web_api_key="web-key", app=self.app, timeout=5.0, session=self.session
        )

    @mock.patch("jobboard.identity.firebase_auth.verify_id_token")
    def test_verify_token_checks_revocation(self, verify_id_token):
        verify_id_token.return_value = {"sub": "u1", "email": "e1@x.com"}
        verified = self.provider.verify_token("tok")
        self.assertEqual(verified.uid, "u1")
        verify_id_token.assert_called_once_with("tok", app=self.app, check_revoked=True)

    @mock.patch("jobboard.identity.firebase_auth.verify_id_token")
    def test_rejected_tokens_are_unauthenticated(self, verify_id_token):
        for error in (
            firebase_auth.InvalidIdTokenError("bad signature"),
            firebase_auth.RevokedIdTokenError("revoked"),
            ValueError("empty token"),
        ):
            verify_id_token.side_effect = error
            with self.assertRaises(Unauthenticated):
                self.provider.verify_token("tok")

    @mock.patch("jobboard.identity.firebase_auth.create_user")
    def test_create_account(self, create_user):
        create_user.return_value = mock.Mock(uid="u1")
        self.assertEqual(self.provider.create_account("e1@x.com", "pw123456"), "u1")

        create_user.side_effect = firebase_auth.EmailAlreadyExistsError("taken", None, None)
        with self.assertRaises(Conflict):
            self.provider.create_account("e1@x.com", "pw123456")

    def test_sign_in_calls_identity_toolkit(self):
        self.session.post.return_value = toolkit_response(
            payload={"localId": "u1", "idToken": "id-tok", "refreshToken": "r", "expiresIn": "3600"}
        )
        result = self.provider.sign_in("e1@x.com", "pw123456")
        self.assertEqual((result.uid, result.id_token, result.expires_in), ("u1", "id-tok", 3600))

        args, kwargs = self.session.post.call_args
        self.assertTrue(args[0].endswith("/accounts:signInWithPassword"))
        self.assertEqual(kwargs["params"], {"key": "web-key"})
        self.assertEqual(kwargs["timeout"], 5.0)
        self.assertTrue(kwargs["json"]["returnSecureToken"])

    def test_sign_in_bad_credentials(self):
        self.session.post.return_value = toolkit_response(
            ok=False, status_code=400, payload={"error": {"message": "INVALID_LOGIN_CREDENTIALS"}}
        )
        with self.assertRaises(Unauthorized):
            self.provider.sign_in("e1@x.com", "wrong")

    def test_sign_in_other_rejections(self):
        self.session.post.return_value = toolkit_response(
            ok=False,
            status_code=400,
            payload={"error": {"message": "TOO_MANY_ATTEMPTS_TRY_LATER : slow down"}},
        )
        with self.assertRaises(AuthSyncFailed) as ctx:
            self.provider.sign_in("e1@x.com", "pw123456")
        self.assertEqual(ctx.exception.detail, "TOO_MANY_ATTEMPTS_TRY_LATER")

        self.session.post.side_effect = requests.ConnectionError("offline")
        with self.assertRaises(AuthSyncFailed):
            self.provider.sign_in("e1@x.com", "pw123456")

    def test_toolkit_needs_web_api_key(self):
        provider = FirebaseIdentityProvider(web_api_key=None, session=self.session)
        with self.assertRaises(AuthSyncFailed):
            provider.send_password_reset("e1@x.com")
        self.session.post.assert_not_called()

    def test_send_password_reset(self):
        self.session.post.return_value = toolkit_response(payload={"email": "e1@x.com"})
        self.provider.send_password_reset("e1@x.com")
        args, kwargs = self.session.post.call_args
        self.assertTrue(args[0].endswith("/accounts:sendOobCode"))
        self.assertEqual(kwargs["json"], {"requestType": "PASSWORD_RESET", "email": "e1@x.com"})

    @mock.patch("jobboard.identity.firebase_auth.update_user")
    def test_update_email_failure_is_auth_sync_failure(self, update_user):
        update_user.side_effect = firebase_exceptions.InvalidArgumentError("bad email")
        with self.assertRaises(AuthSyncFailed):
            self.provider.update_email("u1", "broken")
        update_user.assert_called_once_with("u1", app=self.app, email="broken")

    @mock.patch("jobboard.identity.firebase_auth.delete_user")
    def test_delete_missing_account(self, delete_user):
        delete_user.side_effect = firebase_auth.UserNotFoundError("no user")
        with self.assertRaises(NotFound):
            self.provider.delete_account("u1")

    @mock.patch("jobboard.identity.firebase_auth.get_user")
    def test_get_account(self, get_user):
        get_user.return_value = mock.Mock(uid="u1", email="e1@x.com")
        account = self.provider.get_account("u1")
        self.assertEqual(account.email, "e1@x.com")

    @mock.patch("jobboard.identity.firebase_auth.revoke_refresh_tokens")
    def test_revoke_sessions(self, revoke_refresh_tokens):
        self.provider.revoke_sessions("u1")
        revoke_refresh_tokens.assert_called_once_with("u1", app=self.app)


class FirebaseStorageClientTests(unittest.TestCase):
    def setUp(self):
        patcher = mock.patch("jobboard.storage.firebase_storage.bucket")
        self.bucket_factory = patcher.start()
        self.addCleanup(patcher.stop)
        self.bucket = self.bucket_factory.return_value
        self.blob = self.bucket.blob.return_value
        self.client = FirebaseStorageClient(bucket_name="jobs-bucket")

    def test_upload_sets_content_type(self):
        self.client.upload_bytes("resumes/u1/1_cv.pdf", b"%PDF", "application/pdf")
        self.bucket.blob.assert_called_with("resumes/u1/1_cv.pdf")
        self.blob.upload_from_string.assert_called_once_with(b"%PDF", content_type="application/pdf")

    def test_long_lived_urls_use_v2_signing(self):
        self.client.signed_url("resumes/u1/1_cv.pdf", timedelta(days=3650))
        self.assertEqual(self.blob.generate_signed_url.call_args.kwargs["version"], "v2")

        self.client.signed_url("resumes/u1/1_cv.pdf", timedelta(minutes=15))
        self.assertEqual(self.blob.generate_signed_url.call_args.kwargs["version"], "v4")

    def test_delete_errors(self):
        self.blob.delete.side_effect = gcloud_exceptions.NotFound("gone")
        with self.assertRaises(BlobNotFound):
            self.client.delete("resumes/u1/1_cv.pdf")

        self.blob.delete.side_effect = gcloud_exceptions.Forbidden("denied")
        with self.assertRaises(StorageFailed):
            self.client.delete("resumes/u1/1_cv.pdf")

    def test_upload_errors(self):
        self.blob.upload_from_string.side_effect = gcloud_exceptions.ServiceUnavailable("down")
        with self.assertRaises(StorageFailed):
            self.client.upload_bytes("resumes/u1/1_cv.pdf", b"%PDF")

        self.blob.upload_from_string.side_effect = requests.ConnectionError("connection reset")
        with self.assertRaises(StorageFailed):
            self.client.upload_bytes("resumes/u1/1_cv.pdf", b"%PDF")


if __name__ == "__main__":
    unittest.main()
